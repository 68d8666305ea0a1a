"""BGP Sync Agent - BGP Peering Sync

Keeps BGP sessions in line with the control plane's flattened BGP config.

Each cycle:
1. Fetch the full snapshot
2. Diff it against the baseline (the last snapshot that was fully applied)
3. Stop with a FATAL outcome if the global AS or our own node config changed
4. Apply added, then updated, then removed keys as session changes
5. Hand back the new snapshot as the next baseline

A cycle that fails to fetch or to apply keeps the old baseline, so the same
delta is retried next time. Session adds and removes must tolerate that.
"""
import logging
from typing import List, Optional

from daemon.outcome import CycleOutcome
from services.neighbors import (
    Action,
    NeighborBuilder,
    NeighborDataError,
    SessionChange,
    SessionOp,
)
from state.keys import KeyInterpreter, KeyKind
from state.snapshot import Delta, Snapshot, diff

logger = logging.getLogger(__name__)


class PeeringSync:
    """One BGP peering sync cycle at a time.

    source must provide `async fetch_peering_snapshot() -> Optional[Snapshot]`;
    session_manager must provide idempotent `add_session(descriptor)` and
    `remove_session(descriptor)`.
    """

    def __init__(
        self,
        source,
        session_manager,
        interpreter: KeyInterpreter,
        builder: Optional[NeighborBuilder] = None,
    ):
        self.source = source
        self.sessions = session_manager
        self.interpreter = interpreter
        self.builder = builder or NeighborBuilder(interpreter)

    async def run_cycle(self, baseline: Optional[Snapshot]) -> CycleOutcome:
        """Run one cycle against `baseline` (None before the first sync)."""
        logger.debug("Polling BGP config")
        current = await self.source.fetch_peering_snapshot()
        if current is None:
            logger.warning("BGP config unavailable, will retry")
            return CycleOutcome.aborted(baseline, "fetch failed")

        if baseline is None:
            return self._initial_sync(current)

        logger.debug(f"BGP config baseline={baseline}")
        logger.debug(f"BGP config current={current}")
        if current == baseline:
            return CycleOutcome.completed(baseline)

        delta = diff(baseline, current)
        logger.info(f"BGP config changed: {delta.summary()}")

        reason = self.fatal_reason(delta)
        if reason:
            logger.error(f"{reason}. Restart required")
            return CycleOutcome.fatal(baseline, reason)

        applied = 0
        for action, keys in (
            (Action.ADD, delta.added),
            (Action.UPDATE, delta.updated),
            (Action.REMOVE, delta.removed),
        ):
            for key in sorted(keys):
                try:
                    applied += self._apply_key(action, key, current, baseline)
                except NeighborDataError as e:
                    logger.error(f"Rejected {action.value} of {key}: {e}")
                except Exception as e:
                    logger.error(f"Failed to apply {action.value} of {key}, cycle aborted: {e}")
                    return CycleOutcome.aborted(baseline, f"{key}: {e}")

        logger.info(f"BGP config sync complete ({applied} session changes)")
        return CycleOutcome.completed(current, applied)

    def fatal_reason(self, delta: Delta) -> Optional[str]:
        for key in sorted(delta.changed):
            interpreted = self.interpreter.interpret(key)
            if not interpreted.is_fatal:
                continue
            if interpreted.kind == KeyKind.GLOBAL_AS:
                return "Global AS number changed"
            return f"Local node config changed ({key})"
        return None

    def _apply_key(self, action: Action, key: str, current: Snapshot, baseline: Snapshot) -> int:
        interpreted = self.interpreter.interpret(key)
        if interpreted.kind == KeyKind.UNRECOGNIZED:
            logger.warning(f"Unhandled key: {key}")
            return 0

        # Old sessions go even when the new value turns out to be unusable.
        removals = self.builder.removals(action, key, interpreted, current, baseline)
        self.apply_changes(removals)
        additions = self.builder.additions(action, key, interpreted, current, baseline)
        self.apply_changes(additions)
        return len(removals) + len(additions)

    def apply_changes(self, changes: List[SessionChange]) -> None:
        for change in changes:
            if change.op == SessionOp.ADD:
                self.sessions.add_session(change.descriptor)
            else:
                self.sessions.remove_session(change.descriptor)

    def _initial_sync(self, current: Snapshot) -> CycleOutcome:
        logger.info("Initial BGP sync")
        descriptors = self.builder.initial_sessions(current)
        try:
            for descriptor in descriptors:
                self.sessions.add_session(descriptor)
        except Exception as e:
            logger.error(f"Initial BGP sync failed: {e}")
            return CycleOutcome.aborted(None, str(e))

        logger.info(f"Initial BGP sync complete ({len(descriptors)} sessions)")
        return CycleOutcome.completed(current, len(descriptors))
