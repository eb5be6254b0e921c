"""
Retention sweeper for CallGuard
Purges records older than each category's window, one bulk delete per category
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import DateTime, column, delete, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..audit import AuditSeverity, create_security_event, emit
from ..config import get_config
from ..constants import AuditEventTypes, RetentionCategories
from ..database import as_utc, create_store_engine
from ..exceptions import StoreUnavailableError
from ..utils.ids import generate_sweep_id
from .policy import RetentionPolicy

logger = structlog.get_logger(__name__)


class PurgeTarget(Protocol):
    """Anything that can bulk-delete its records older than a cutoff"""

    def purge_before(self, cutoff: datetime) -> int:
        ...


class TablePurgeTarget:
    """Purges an externally owned table by its timestamp column"""

    def __init__(self, engine: Engine, table_name: str, timestamp_column: str = "created_at"):
        self.engine = engine
        self.table = table(table_name, column(timestamp_column, DateTime))
        self.timestamp_column = timestamp_column

    def purge_before(self, cutoff: datetime) -> int:
        statement = delete(self.table).where(self.table.c[self.timestamp_column] < as_utc(cutoff))
        try:
            with self.engine.begin() as connection:
                return connection.execute(statement).rowcount
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"purge_{self.table.name}", reason=type(e).__name__) from e


class ConsentPurgeTarget:
    """Purges closed consent records; open grants are never deleted"""

    def __init__(self, storage):
        self.storage = storage

    def purge_before(self, cutoff: datetime) -> int:
        return self.storage.purge_closed_before(cutoff)


class SweepStatus(str, Enum):
    PURGED = "purged"
    SKIPPED = "skipped"
    FAILED = "failed"


class CategoryOutcome(BaseModel):
    """Result of sweeping one category"""
    category: str
    status: SweepStatus
    purged_count: int = 0
    error: Optional[str] = None


class SweepReport(BaseModel):
    """Result of one sweep run"""
    sweep_id: str = Field(default_factory=generate_sweep_id)
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = Field(default=False, description="True when another sweep was already running")
    outcomes: Dict[str, CategoryOutcome] = Field(default_factory=dict)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            category: outcome.purged_count
            for category, outcome in self.outcomes.items()
            if outcome.status == SweepStatus.PURGED
        }

    @property
    def failed(self) -> List[str]:
        return sorted(c for c, o in self.outcomes.items() if o.status == SweepStatus.FAILED)


class RetentionSweeper:
    """
    Applies a RetentionPolicy to a set of purge targets.

    Each finite-window category is purged in its own transaction on a worker
    thread; a failing category does not stop the others. A sweep requested
    while one is running returns a skipped report immediately.
    """

    def __init__(self, policy: RetentionPolicy, targets: Mapping[str, PurgeTarget],
                 consent_storage=None, max_workers: int = 4):
        self.policy = policy
        self.targets = dict(targets)
        self.consent_storage = consent_storage
        self.max_workers = max_workers
        self._running = threading.Lock()

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = as_utc(now) if now is not None else datetime.now(UTC)
        report = SweepReport(started_at=now)

        if not self._running.acquire(blocking=False):
            logger.info("Retention sweep already running, skipping", sweep_id=report.sweep_id)
            report.skipped = True
            report.finished_at = now
            return report

        try:
            jobs: Dict[str, Callable[[], int]] = {}
            for category in sorted(set(self.policy.windows) | set(self.targets)):
                window = self.policy.window_for(category)
                if window is None:
                    report.outcomes[category] = CategoryOutcome(category=category,
                                                                status=SweepStatus.SKIPPED)
                    continue
                target = self.targets.get(category)
                if target is None:
                    report.outcomes[category] = CategoryOutcome(
                        category=category, status=SweepStatus.FAILED,
                        error="No purge target registered")
                    continue
                jobs[category] = _bind(target.purge_before, now - window)

            redaction = self.policy.redaction_window()
            if redaction is not None and self.consent_storage is not None:
                jobs[RetentionCategories.CONSENT_PROOF] = _bind(
                    self.consent_storage.redact_proof_before, now - redaction)

            if jobs:
                with ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs))) as pool:
                    futures = {category: pool.submit(job) for category, job in jobs.items()}
                    for category, future in futures.items():
                        report.outcomes[category] = self._outcome(category, future)

            report.finished_at = datetime.now(UTC)
        finally:
            self._running.release()

        self._audit(report)
        return report

    def _outcome(self, category: str, future) -> CategoryOutcome:
        try:
            count = future.result()
        except Exception as e:
            logger.error("Retention purge failed", category=category, error=str(e))
            return CategoryOutcome(category=category, status=SweepStatus.FAILED, error=str(e))
        return CategoryOutcome(category=category, status=SweepStatus.PURGED, purged_count=count)

    def _audit(self, report: SweepReport) -> None:
        emit(create_security_event(
            AuditEventTypes.RETENTION_SWEEP,
            "Retention sweep completed",
            severity=AuditSeverity.ERROR if report.failed else AuditSeverity.INFO,
            details={"sweep_id": report.sweep_id, "counts": report.counts,
                     "failed": report.failed},
        ))


def _bind(purge: Callable[[datetime], int], cutoff: datetime) -> Callable[[], int]:
    return lambda: purge(cutoff)


class RetentionScheduler:
    """Runs the sweeper periodically on the event loop's default executor"""

    def __init__(self, sweeper: RetentionSweeper, interval_seconds: float):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[SweepReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info("Retention scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Retention scheduler stopped")

    async def run_once(self) -> SweepReport:
        self.last_report = await asyncio.to_thread(self.sweeper.sweep, datetime.now(UTC))
        return self.last_report

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Retention sweep crashed", error=str(e))
            await asyncio.sleep(self.interval_seconds)


def build_default_targets(database_url: str, attempts, consent_storage) -> Dict[str, PurgeTarget]:
    """Purge targets for every category in the default deployment"""
    config = get_config()
    engine = create_store_engine(database_url)
    return {
        RetentionCategories.CALLS: attempts,
        RetentionCategories.RECORDINGS: TablePurgeTarget(engine, config.recordings_table),
        RetentionCategories.LOGS: TablePurgeTarget(engine, config.logs_table),
        RetentionCategories.CONSENT: ConsentPurgeTarget(consent_storage),
    }


# Global retention sweeper instance
_retention_sweeper: Optional[RetentionSweeper] = None


def get_retention_sweeper() -> RetentionSweeper:
    """Get the global retention sweeper instance"""
    global _retention_sweeper
    if _retention_sweeper is None:
        from ..compliance.gate import get_compliance_gate
        from ..consent.ledger import get_consent_ledger

        config = get_config()
        consent_storage = get_consent_ledger().storage
        _retention_sweeper = RetentionSweeper(
            RetentionPolicy.from_config(config),
            build_default_targets(config.database_url, get_compliance_gate().attempts,
                                  consent_storage),
            consent_storage=consent_storage,
        )
    return _retention_sweeper
