"""Post-ingestion summary hand-off: queue, summarizer protocol and worker."""

from src.summarization.config import SummaryConfig
from src.summarization.queue import SummaryJob, SummaryQueue
from src.summarization.summarizer import (
    RemoteSummarizer,
    Summarizer,
    SummarizerError,
    SummaryResult,
)

__all__ = [
    "RemoteSummarizer",
    "Summarizer",
    "SummarizerError",
    "SummaryConfig",
    "SummaryJob",
    "SummaryQueue",
    "SummaryResult",
]
