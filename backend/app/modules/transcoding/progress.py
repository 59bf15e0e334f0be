"""In-memory progress table for running transcode jobs.

One row per job, one cell per target. Rows are created when a job starts and
removed by the job's owner once the job is terminal.
"""

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class DuplicateJobError(Exception):
    """A job id is already tracked."""
    pass


class JobNotFoundError(Exception):
    """A job id is unknown or has expired."""
    pass


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


@dataclass
class _ProgressRow:
    percents: list[float]
    done: list[bool] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.done:
            self.done = [False] * len(self.percents)


class ProgressTable:
    """Aggregates per-target progress into a job-level percentage.

    Cells are disjoint per target so concurrent writers for different targets
    never overwrite each other; the lock only protects the row map and the
    read-modify-write of a single cell.
    """

    def __init__(self):
        self._rows: dict[str, _ProgressRow] = {}
        self._lock = threading.Lock()

    def start_job(self, job_id: str, target_count: int) -> None:
        """Create a zeroed row for a job.

        Raises:
            DuplicateJobError: If the job id is still tracked
            ValueError: If target_count is not positive
        """
        if target_count <= 0:
            raise ValueError("target_count must be positive")
        with self._lock:
            if job_id in self._rows:
                raise DuplicateJobError(f"Job {job_id} is already tracked")
            self._rows[job_id] = _ProgressRow(percents=[0.0] * target_count)

    def report_progress(self, job_id: str, target_index: int, percent: float) -> None:
        """Record progress for one target.

        Unknown jobs and out-of-range indices are logged and ignored so late
        events from a finished job never reach the caller as errors. A cell
        never moves backwards and a done cell stays at 100.
        """
        with self._lock:
            row = self._rows.get(job_id)
            if row is None:
                logger.debug("Progress for unknown job %s ignored", job_id)
                return
            if not 0 <= target_index < len(row.percents):
                logger.warning(
                    "Progress for job %s has invalid target index %s", job_id, target_index
                )
                return
            if row.done[target_index]:
                return
            row.percents[target_index] = max(
                row.percents[target_index], clamp_percent(percent)
            )

    def mark_target_done(self, job_id: str, target_index: int) -> None:
        """Pin a target to 100."""
        with self._lock:
            row = self._rows.get(job_id)
            if row is None or not 0 <= target_index < len(row.percents):
                logger.debug("Done mark for unknown job/target %s/%s ignored", job_id, target_index)
                return
            row.percents[target_index] = 100.0
            row.done[target_index] = True

    def overall_progress(self, job_id: str) -> float:
        """Average of the job's per-target percentages.

        Raises:
            JobNotFoundError: If the job is not tracked
        """
        with self._lock:
            row = self._rows.get(job_id)
            if row is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            return sum(row.percents) / len(row.percents)

    def target_progress(self, job_id: str) -> list[float]:
        """Snapshot of the per-target percentages in target order."""
        with self._lock:
            row = self._rows.get(job_id)
            if row is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            return list(row.percents)

    def is_tracked(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._rows

    def end_job(self, job_id: str) -> None:
        """Forget a job. Unknown ids are ignored."""
        with self._lock:
            self._rows.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
