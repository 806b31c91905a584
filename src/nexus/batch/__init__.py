"""
Bulk search and detail operations.
"""

from nexus.batch.orchestrator import (
    BatchItemOutcome,
    BatchOperation,
    BatchOptions,
    BatchOrchestrator,
    BatchResult,
    ItemStatus,
)

__all__ = [
    "BatchOrchestrator",
    "BatchOperation",
    "BatchOptions",
    "BatchItemOutcome",
    "BatchResult",
    "ItemStatus",
]
