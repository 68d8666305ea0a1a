"""
BGP Sync Agent - BGP Peering Sync Tests
"""
import json
from unittest.mock import MagicMock

import pytest

from conftest import FakeSource
from daemon.outcome import CycleStatus
from daemon.peering_sync import PeeringSync
from services.neighbors import SessionDescriptor
from services.sessions import SessionError

BASE = {
    "global/as_num": "64512",
    "global/node_mesh": '{"enabled":true}',
    "allnodes/local/ip_addr_v4": "10.0.0.1",
    "allnodes/n1/as_num": "65001",
    "allnodes/n2/ip_addr_v4": "10.0.0.6",
}


def make_sync(interpreter, sessions, *snapshots):
    return PeeringSync(FakeSource(peering=snapshots), sessions, interpreter)


class TestDeltaCycle:
    @pytest.mark.asyncio
    async def test_unchanged_snapshot(self, interpreter, sessions):
        sync = make_sync(interpreter, sessions, {"global/as_num": "64512"})

        outcome = await sync.run_cycle({"global/as_num": "64512"})

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == {"global/as_num": "64512"}
        assert sessions.calls == []

    @pytest.mark.asyncio
    async def test_global_as_change_is_fatal(self, interpreter, sessions):
        baseline = {"global/as_num": "64512"}
        current = {"global/as_num": "64513", "allnodes/n1/ip_addr_v4": "10.0.0.5"}
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(baseline)

        assert outcome.status == CycleStatus.FATAL
        assert "Global AS" in outcome.reason
        assert outcome.baseline is baseline
        assert sessions.calls == []

    @pytest.mark.asyncio
    async def test_local_node_change_is_fatal(self, interpreter, sessions):
        current = dict(BASE, **{"allnodes/local/ip_addr_v4": "10.0.0.2"})
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(dict(BASE))

        assert outcome.status == CycleStatus.FATAL
        assert "allnodes/local/ip_addr_v4" in outcome.reason
        assert sessions.calls == []

    @pytest.mark.asyncio
    async def test_new_node_address(self, interpreter, sessions):
        current = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.5"})
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(dict(BASE))

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == current
        assert sessions.calls == [
            ("add", SessionDescriptor("10.0.0.5", 65001, "Mesh_10_0_0_5")),
        ]

    @pytest.mark.asyncio
    async def test_address_change_removes_old_first(self, interpreter, sessions):
        baseline = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.5"})
        current = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.7"})
        sync = make_sync(interpreter, sessions, current)

        await sync.run_cycle(baseline)

        assert [(op, d.address) for op, d in sessions.calls] == [
            ("remove", "10.0.0.5"),
            ("add", "10.0.0.7"),
        ]
        assert set(sessions.sessions) == {"10.0.0.7"}

    @pytest.mark.asyncio
    async def test_adds_before_updates_before_removes(self, interpreter, sessions):
        baseline = dict(BASE, **{
            "allnodes/n1/ip_addr_v4": "10.0.0.5",
            "allnodes/n3/ip_addr_v4": "10.0.0.8",
        })
        current = dict(BASE, **{
            "allnodes/n1/ip_addr_v4": "10.0.0.9",
            "allnodes/n4/ip_addr_v4": "10.0.0.10",
        })
        sync = make_sync(interpreter, sessions, current)

        await sync.run_cycle(baseline)

        assert [(op, d.address) for op, d in sessions.calls] == [
            ("add", "10.0.0.10"),
            ("remove", "10.0.0.5"),
            ("add", "10.0.0.9"),
            ("remove", "10.0.0.8"),
        ]

    @pytest.mark.asyncio
    async def test_mesh_disabled_removes_every_neighbor(self, interpreter, sessions):
        baseline = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.5"})
        current = dict(baseline, **{"global/node_mesh": '{"enabled":false}'})
        sync = make_sync(interpreter, sessions, current)

        await sync.run_cycle(baseline)

        assert sessions.ops("add") == []
        assert [d.address for d in sessions.ops("remove")] == ["10.0.0.5", "10.0.0.6"]

    @pytest.mark.asyncio
    async def test_peer_records(self, interpreter, sessions):
        key = "global/peer_v4/192.0.2.1"
        gone = "allnodes/local/peer_v4/192.0.2.9"
        baseline = dict(BASE, **{gone: json.dumps({"ip": "192.0.2.9", "as_num": 64515})})
        current = dict(BASE, **{key: json.dumps({"ip": "192.0.2.1", "as_num": "64514"})})
        sync = make_sync(interpreter, sessions, current)

        await sync.run_cycle(baseline)

        assert [(op, d.label) for op, d in sessions.calls] == [
            ("add", "Global_192_0_2_1"),
            ("remove", "Node_192_0_2_9"),
        ]

    @pytest.mark.asyncio
    async def test_data_error_skips_only_that_key(self, interpreter, sessions):
        current = dict(BASE, **{
            "allnodes/n1/ip_addr_v4": "10.0.0.5",
            "allnodes/n9/ip_addr_v4": "10.0.0.99",
            "global/peer_v4/192.0.2.1": "{broken",
        })
        # n9 has no AS of its own and there is no global AS to fall back to
        del current["global/as_num"]
        baseline = dict(BASE)
        del baseline["global/as_num"]
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(baseline)

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == current
        assert [d.address for d in sessions.ops("add")] == ["10.0.0.5"]

    @pytest.mark.asyncio
    async def test_address_change_with_unresolvable_as_still_removes_old(self, interpreter, sessions):
        baseline = {
            "global/node_mesh": '{"enabled":true}',
            "allnodes/n1/as_num": "65001",
            "allnodes/n1/ip_addr_v4": "10.0.0.5",
        }
        current = {
            "global/node_mesh": '{"enabled":true}',
            "allnodes/n1/ip_addr_v4": "10.0.0.7",
        }
        sessions.add_session(SessionDescriptor("10.0.0.5", 65001, "Mesh_10_0_0_5"))
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(baseline)

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == current
        assert "10.0.0.5" not in sessions.sessions
        assert [d.address for d in sessions.ops("add")] == ["10.0.0.5"]

    @pytest.mark.asyncio
    async def test_corrected_peer_record_is_applied(self, interpreter, sessions):
        key = "global/peer_v4/192.0.2.1"
        baseline = dict(BASE, **{key: "{broken"})
        current = dict(BASE, **{key: json.dumps({"ip": "192.0.2.1", "as_num": 64514})})
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(baseline)

        assert outcome.status == CycleStatus.COMPLETED
        assert sessions.sessions["192.0.2.1"].remote_as == 64514

    @pytest.mark.asyncio
    async def test_unrecognized_keys_ignored(self, interpreter, sessions):
        current = dict(BASE, **{"global/loglevel": "debug", "allnodes/n1/network_v4": "x"})
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(dict(BASE))

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == current
        assert sessions.calls == []

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_baseline(self, interpreter, sessions):
        baseline = dict(BASE)
        sync = make_sync(interpreter, sessions)

        outcome = await sync.run_cycle(baseline)

        assert outcome.status == CycleStatus.ABORTED
        assert outcome.baseline is baseline

    @pytest.mark.asyncio
    async def test_session_error_aborts_and_retries(self, interpreter, sessions):
        current = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.5"})
        failing = MagicMock()
        failing.add_session.side_effect = SessionError("disk full")
        sync = PeeringSync(FakeSource(peering=[current, current]), failing, interpreter)

        outcome = await sync.run_cycle(dict(BASE))

        assert outcome.status == CycleStatus.ABORTED
        assert outcome.baseline == BASE

        # Next cycle sees the same delta again
        sync.sessions = sessions
        outcome = await sync.run_cycle(outcome.baseline)

        assert outcome.status == CycleStatus.COMPLETED
        assert [d.address for d in sessions.ops("add")] == ["10.0.0.5"]

    @pytest.mark.asyncio
    async def test_reapplying_same_delta_is_idempotent(self, interpreter, sessions):
        current = dict(BASE, **{"allnodes/n1/ip_addr_v4": "10.0.0.5"})
        sync = make_sync(interpreter, sessions, current, current)

        await sync.run_cycle(dict(BASE))
        once = dict(sessions.sessions)
        await sync.run_cycle(dict(BASE))

        assert sessions.sessions == once


class TestInitialSync:
    @pytest.mark.asyncio
    async def test_first_cycle_adds_everything(self, interpreter, sessions):
        current = dict(BASE, **{
            "allnodes/n1/ip_addr_v4": "10.0.0.5",
            "global/peer_v4/192.0.2.1": json.dumps({"ip": "192.0.2.1", "as_num": 64514}),
        })
        sync = make_sync(interpreter, sessions, current)

        outcome = await sync.run_cycle(None)

        assert outcome.status == CycleStatus.COMPLETED
        assert outcome.baseline == current
        assert outcome.changes == 3
        assert sessions.ops("remove") == []
        assert sorted(sessions.sessions) == ["10.0.0.5", "10.0.0.6", "192.0.2.1"]

    @pytest.mark.asyncio
    async def test_first_cycle_ignores_fatal_keys(self, interpreter, sessions):
        sync = make_sync(interpreter, sessions, dict(BASE))

        outcome = await sync.run_cycle(None)

        assert outcome.status == CycleStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_first_cycle_failure_stays_uninitialized(self, interpreter):
        failing = MagicMock()
        failing.add_session.side_effect = SessionError("boom")
        sync = PeeringSync(FakeSource(peering=[dict(BASE)]), failing, interpreter)

        outcome = await sync.run_cycle(None)

        assert outcome.status == CycleStatus.ABORTED
        assert outcome.baseline is None
