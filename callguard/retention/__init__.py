"""
Data retention module for CallGuard
Per-category retention windows and the sweeper that enforces them
"""

from .policy import RetentionPolicy
from .sweeper import (
    CategoryOutcome,
    ConsentPurgeTarget,
    PurgeTarget,
    RetentionScheduler,
    RetentionSweeper,
    SweepReport,
    SweepStatus,
    TablePurgeTarget,
    build_default_targets,
    get_retention_sweeper,
)

__all__ = [
    "RetentionPolicy",
    "CategoryOutcome",
    "ConsentPurgeTarget",
    "PurgeTarget",
    "RetentionScheduler",
    "RetentionSweeper",
    "SweepReport",
    "SweepStatus",
    "TablePurgeTarget",
    "build_default_targets",
    "get_retention_sweeper",
]
