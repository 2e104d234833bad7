"""Data reconciliation: dedup, geo completion, conflict resolution, status."""

from karaoke_scout.services.reconciliation.engine import ReconciledRecords, ReconciliationEngine
from karaoke_scout.services.reconciliation.status import STATUS_PRIORITY, WorkingShow, classify_status

__all__ = [
    "STATUS_PRIORITY",
    "ReconciledRecords",
    "ReconciliationEngine",
    "WorkingShow",
    "classify_status",
]
