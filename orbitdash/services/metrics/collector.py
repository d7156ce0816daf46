"""
Metrics Collection Loop

Single periodic driver for the metrics pipeline. Every tick, in order:
1. Sampler.sample()
2. RetentionStore.record() (insert + prune in one transaction)
3. BroadcastHub.publish()

A failing step is logged and the loop keeps ticking. Sampling and
storage run in a worker thread so the event loop is never blocked by
/proc reads, df or SQLite.
"""

import asyncio
import time

from ...common.logging_setup import get_service_logger, log_sample
from ...common.scheduler import ScheduledLoop
from .broadcast import BroadcastHub
from .models import Sample
from .retention import RetentionStore
from .sampler import Sampler

logger = get_service_logger("metrics.collector")

SAMPLE_INTERVAL_S = 1.0


class CollectionLoop:
    """Ticks Sampler -> RetentionStore -> BroadcastHub once per interval"""

    def __init__(
        self,
        sampler: Sampler,
        store: RetentionStore,
        hub: BroadcastHub,
        interval_seconds: float = SAMPLE_INTERVAL_S,
    ):
        self.sampler = sampler
        self.store = store
        self.hub = hub
        self.interval_seconds = interval_seconds

        self._scheduler = ScheduledLoop(interval_seconds, self.tick, name="metrics")
        self._store_failures = 0

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        """Start ticking. A second call while running is a no-op."""
        if self.running:
            return

        # Prime the CPU counters; this reading is discarded
        try:
            await asyncio.to_thread(self.sampler.sample)
        except Exception as e:
            logger.warning(f"Initial sample failed: {e}")

        await self._scheduler.start()
        logger.info(f"Metrics collection started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop ticking. Safe to call when already stopped."""
        if not self.running:
            return
        await self._scheduler.stop()
        logger.info("Metrics collection stopped")

    async def tick(self) -> Sample | None:
        """Run one sample -> store -> publish cycle"""
        start = time.time()

        try:
            sample = await asyncio.to_thread(self.sampler.sample)
        except Exception as e:
            logger.error(f"Sampling failed: {e}", exc_info=True)
            return None

        try:
            await asyncio.to_thread(self.store.record, sample)
        except Exception as e:
            self._store_failures += 1
            logger.error(
                f"Storing sample failed: {e}",
                extra={"ts": sample.timestamp, "store_failures": self._store_failures},
            )

        try:
            self.hub.publish(sample)
        except Exception as e:
            logger.error(f"Publishing sample failed: {e}", exc_info=True)

        log_sample(logger, sample, (time.time() - start) * 1000)
        return sample

    def get_stats(self) -> dict:
        return {
            **self._scheduler.get_stats(),
            "store_failures": self._store_failures,
            "sources": self.sampler.sources,
        }
