"""BGP Sync Agent - IP Pool Sync

Feeds the pool cache from the control plane's flattened pool config.
"""
import asyncio
import logging

from daemon.outcome import CycleOutcome
from state.pools import IPPool, PoolCache, PoolDataError
from state.snapshot import Delta, Snapshot, diff

logger = logging.getLogger(__name__)


class PoolSync:
    def __init__(self, source, cache: PoolCache):
        self.source = source
        self.cache = cache

    async def run_cycle(self, baseline: Snapshot) -> CycleOutcome:
        """Run one cycle against `baseline` ({} before the first sync)."""
        current = await self.source.fetch_pool_snapshot()
        if current is None:
            logger.warning("IP pools unavailable, will retry")
            return CycleOutcome.aborted(baseline, "fetch failed")

        logger.debug(f"Pool sync baseline={baseline}")
        logger.debug(f"Pool sync current={current}")
        if current == baseline:
            return CycleOutcome.completed(baseline)

        delta = diff(baseline, current)
        logger.info(f"IP pools changed: {delta.summary()}")

        # Cache writes block on the table lock, run them off the event loop.
        try:
            changed = await asyncio.to_thread(self._apply_delta, delta, baseline, current)
        except Exception as e:
            logger.error(f"Pool sync failed, cycle aborted: {e}")
            return CycleOutcome.aborted(baseline, str(e))

        return CycleOutcome.completed(current, changed)

    def _apply_delta(self, delta: Delta, baseline: Snapshot, current: Snapshot) -> int:
        changed = 0
        for key in sorted(delta.added | delta.updated):
            if key in delta.updated:
                changed += self._drop_moved(key, baseline[key], current[key])
            changed += self._apply(key, current[key], removal=False)
        for key in sorted(delta.removed):
            changed += self._apply(key, baseline[key], removal=True)
        return changed

    def _drop_moved(self, key: str, old_raw: str, new_raw: str) -> int:
        """Remove the old entry when a key now describes a different CIDR."""
        try:
            old = IPPool.from_json(old_raw)
        except PoolDataError:
            # Never made it into the cache
            return 0
        try:
            new_cidr = IPPool.from_json(new_raw).cidr
        except PoolDataError:
            new_cidr = None
        if new_cidr == old.cidr:
            return 0
        logger.info(f"Pool entry {key} no longer describes {old.cidr}")
        return self._apply(key, old_raw, removal=True)

    def _apply(self, key: str, raw: str, removal: bool) -> int:
        try:
            return int(self.cache.apply(raw, removal))
        except PoolDataError as e:
            logger.error(f"Rejected pool entry {key}: {e}")
            return 0
