"""Batch pipeline: orchestration and persistence of verification outcomes."""

from .persistence import (
    OutcomeStore,
    InMemoryOutcomeStore,
    secure_record,
    to_display_row,
    status_counts,
    verification_stats,
)
from .orchestrator import BatchOrchestrator, next_batch_id, process_file

__all__ = [
    "OutcomeStore",
    "InMemoryOutcomeStore",
    "secure_record",
    "to_display_row",
    "status_counts",
    "verification_stats",
    "BatchOrchestrator",
    "next_batch_id",
    "process_file",
]
