"""Track ingestion: workflow steps, runtime and completion signals."""

from moodscope.ingest.describe import DescriptionTier, ShortDescriber
from moodscope.ingest.events import EventSink, LoggingEventSink, MemoryEventSink
from moodscope.ingest.ledger import CompletionLedger
from moodscope.ingest.runtime import StepContext, Throttle, WorkflowRuntime
from moodscope.ingest.workflow import STEPS, TrackIngestionWorkflow

__all__ = [
    "STEPS",
    "CompletionLedger",
    "DescriptionTier",
    "EventSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "ShortDescriber",
    "StepContext",
    "Throttle",
    "TrackIngestionWorkflow",
    "WorkflowRuntime",
]
