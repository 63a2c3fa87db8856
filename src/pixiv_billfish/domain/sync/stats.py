"""
Per-pipeline run counters.
"""

import threading
from dataclasses import dataclass

from loguru import logger


@dataclass(frozen=True)
class StatsSnapshot:
    """Counter values at one instant."""

    total: int = 0
    success: int = 0
    fail: int = 0
    skip: int = 0


class Statistics:
    """Thread-safe total/success/fail/skip counters for one pipeline.

    Every outcome also bumps ``total``, so total == success + fail + skip
    once all tasks have finished.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._success = 0
        self._fail = 0
        self._skip = 0
        self._total = 0

    def record_success(self) -> None:
        with self._lock:
            self._success += 1
            self._total += 1

    def record_fail(self) -> None:
        with self._lock:
            self._fail += 1
            self._total += 1

    def record_skip(self) -> None:
        with self._lock:
            self._skip += 1
            self._total += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                total=self._total,
                success=self._success,
                fail=self._fail,
                skip=self._skip,
            )

    def log_summary(self) -> None:
        snap = self.snapshot()
        logger.info(f"=== {self.name} statistics ===")
        logger.info(f"  Total:   {snap.total}")
        logger.info(f"  Success: {snap.success}")
        logger.info(f"  Failed:  {snap.fail}")
        logger.info(f"  Skipped: {snap.skip}")
