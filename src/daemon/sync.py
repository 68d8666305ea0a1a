"""BGP Sync Agent - Sync Daemon

Runs the BGP peering and IP pool sync cycles on their own fixed intervals
and owns both baselines.
"""
import asyncio
import logging
from typing import Optional

from daemon.outcome import CycleOutcome, CycleStatus
from daemon.peering_sync import PeeringSync
from daemon.pool_sync import PoolSync
from state.snapshot import Snapshot

logger = logging.getLogger(__name__)


class SyncDaemon:
    def __init__(
        self,
        peering_sync: PeeringSync,
        pool_sync: PoolSync,
        poll_interval: int = 5,
        pool_interval: int = 5,
    ):
        self.peering = peering_sync
        self.pools = pool_sync
        self.poll_interval = poll_interval
        self.pool_interval = pool_interval
        self.peering_baseline: Optional[Snapshot] = None
        self.pool_baseline: Snapshot = {}
        self.last_peering: Optional[CycleOutcome] = None
        self.last_pool: Optional[CycleOutcome] = None
        self.fatal_reason: Optional[str] = None
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def peering_initialized(self) -> bool:
        return self.peering_baseline is not None

    async def sync_peering(self) -> CycleOutcome:
        outcome = await self.peering.run_cycle(self.peering_baseline)
        self.peering_baseline = outcome.baseline
        self.last_peering = outcome
        if outcome.status == CycleStatus.FATAL:
            self.fatal_reason = outcome.reason
            logger.error(f"Stopping: {outcome.reason}")
            await self.stop()
        return outcome

    async def sync_pools(self) -> CycleOutcome:
        outcome = await self.pools.run_cycle(self.pool_baseline)
        self.pool_baseline = outcome.baseline
        self.last_pool = outcome
        return outcome

    async def _wait(self, seconds: float):
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _loop(self, cycle, interval: float):
        while self._running:
            await cycle()
            if not self._running:
                break
            await self._wait(interval)

    async def run(self):
        self._running = True
        self._stop_event = asyncio.Event()
        await asyncio.gather(
            self._loop(self.sync_peering, self.poll_interval),
            self._loop(self.sync_pools, self.pool_interval),
        )

    async def stop(self):
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    def status(self) -> dict:
        return {
            "running": self._running,
            "peering_initialized": self.peering_initialized,
            "peering": self.last_peering.to_dict() if self.last_peering else None,
            "pools": self.last_pool.to_dict() if self.last_pool else None,
            "fatal_reason": self.fatal_reason,
        }
