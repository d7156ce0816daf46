"""
Metrics Retention Store

Keeps a rolling window of samples in SQLite. Each write inserts the
new sample and prunes anything older than the retention horizon in
one transaction, so the table stays bounded even if ticks drift.
"""

from typing import Callable

from ...common.logging_setup import get_service_logger
from ...common.timestamp import now_ms, window_cutoff
from ...storage.database import Database
from .models import Sample

logger = get_service_logger("metrics.retention")

RETENTION_SECONDS = 60


class RetentionStore:
    """Rolling window of samples keyed by timestamp"""

    def __init__(
        self,
        db: Database,
        retention_seconds: int = RETENTION_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.retention_seconds = retention_seconds
        self._clock = clock

    def record(self, sample: Sample) -> int:
        """
        Insert (or replace) a sample and prune old ones atomically.

        The horizon is measured from the newest of the sample timestamp
        and the current time.

        Returns:
            Number of pruned samples
        """
        cutoff = window_cutoff(max(sample.timestamp, self._clock()), self.retention_seconds)
        with self.db.transaction() as conn:
            self._insert(conn, sample)
            pruned = self._prune(conn, cutoff)

        if pruned:
            logger.debug(f"Pruned {pruned} samples older than {cutoff}")
        return pruned

    def insert_or_replace(self, sample: Sample) -> None:
        """Store a sample, replacing any sample with the same timestamp"""
        with self.db.transaction() as conn:
            self._insert(conn, sample)

    def prune_older_than(self, cutoff_ts: int) -> int:
        """Delete samples with timestamp < cutoff_ts"""
        with self.db.transaction() as conn:
            return self._prune(conn, cutoff_ts)

    def query(self, window_seconds: float, now: int | None = None) -> list[Sample]:
        """
        Samples with now - timestamp <= window, ascending by timestamp.

        Read-only; the window may be shorter than the retention horizon.
        """
        now = self._clock() if now is None else now
        cutoff = window_cutoff(now, window_seconds)
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT ts, cpu, ram, disk FROM metrics_samples "
                "WHERE ts >= ? ORDER BY ts ASC",
                (cutoff,),
            ).fetchall()
        return [Sample.from_row(row) for row in rows]

    def latest(self) -> Sample | None:
        """Most recent stored sample"""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT ts, cpu, ram, disk FROM metrics_samples ORDER BY ts DESC LIMIT 1"
            ).fetchone()
        return Sample.from_row(row) if row else None

    def count(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM metrics_samples").fetchone()[0]

    @staticmethod
    def _insert(conn, sample: Sample) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO metrics_samples (ts, cpu, ram, disk) VALUES (?, ?, ?, ?)",
            (sample.timestamp, sample.cpu, sample.ram, sample.disk),
        )

    @staticmethod
    def _prune(conn, cutoff_ts: int) -> int:
        cursor = conn.execute("DELETE FROM metrics_samples WHERE ts < ?", (cutoff_ts,))
        return cursor.rowcount
