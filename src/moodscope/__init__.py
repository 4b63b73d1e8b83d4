"""moodscope — mood and theme discovery over a personal music catalogue."""

__version__ = "0.1.0"
