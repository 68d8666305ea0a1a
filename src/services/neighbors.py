"""BGP Sync Agent - Neighbor Session Builder

Turns interpreted configuration keys into BGP session changes.

Session identity is the remote address. An update is always expressed as a
removal of the session built from the old value followed by an add of the
session built from the new one.
"""
import ipaddress
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from state.keys import InterpretedKey, KeyInterpreter, KeyKind, KeyLayout
from state.snapshot import Snapshot

logger = logging.getLogger(__name__)

MAX_AS_NUMBER = 2**32 - 1
DEFAULT_MESH_ENABLED = True


class NeighborDataError(ValueError):
    """A configuration value that cannot be turned into a session."""


class ASResolutionError(NeighborDataError):
    """No usable AS number for a node."""


class Action(Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class SessionOp(Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class SessionDescriptor:
    address: str
    remote_as: Optional[int]
    label: str


@dataclass(frozen=True)
class SessionChange:
    op: SessionOp
    descriptor: SessionDescriptor


def underscore(value: str) -> str:
    """Make an address usable inside protocol and file names."""
    return value.replace(".", "_").replace(":", "_")


def make_label(kind: str, address: str) -> str:
    return f"{kind}_{underscore(address)}"


def parse_as_number(value) -> int:
    """Parse an AS number given as int, plain string or asdot ("1.10")."""
    if isinstance(value, bool):
        raise NeighborDataError(f"Invalid AS number: {value!r}")
    if isinstance(value, int):
        asn = value
    elif isinstance(value, str):
        high, dot, low = value.strip().partition(".")
        try:
            high_num = int(high)
            low_num = int(low) if dot else None
        except ValueError:
            raise NeighborDataError(f"Invalid AS number: {value!r}") from None
        if low_num is None:
            asn = high_num
        elif 0 <= high_num <= 0xFFFF and 0 <= low_num <= 0xFFFF:
            asn = (high_num << 16) + low_num
        else:
            raise NeighborDataError(f"Invalid asdot AS number: {value!r}")
    else:
        raise NeighborDataError(f"Invalid AS number: {value!r}")

    if not 0 <= asn <= MAX_AS_NUMBER:
        raise NeighborDataError(f"AS number out of range: {value!r}")
    return asn


def parse_address(value: str) -> str:
    """Normalize a configured neighbor address, dropping any prefix length."""
    address = value.strip().split("/")[0]
    try:
        return str(ipaddress.ip_address(address))
    except ValueError:
        raise NeighborDataError(f"Invalid neighbor address: {value!r}") from None


def mesh_enabled(snapshot: Snapshot, layout: KeyLayout) -> bool:
    raw = snapshot.get(layout.mesh_key)
    if raw is None:
        return DEFAULT_MESH_ENABLED
    try:
        data = json.loads(raw)
    except ValueError:
        raise NeighborDataError(f"Invalid mesh setting: {raw!r}") from None
    if not isinstance(data, dict) or not isinstance(data.get("enabled"), bool):
        raise NeighborDataError(f"Invalid mesh setting: {raw!r}")
    return data["enabled"]


def resolve_node_as(snapshot: Snapshot, node: str, layout: KeyLayout) -> int:
    """AS number of a node: its own as_num, else the global one."""
    for key in (layout.node_as_key(node), layout.global_as_key):
        value = snapshot.get(key, "")
        if value:
            try:
                return parse_as_number(value)
            except NeighborDataError as e:
                raise ASResolutionError(f"{node}: {e}") from None
    raise ASResolutionError(f"No AS number for node {node}")


class NeighborBuilder:
    """Builds session changes for one key of a snapshot delta."""

    def __init__(
        self,
        interpreter: KeyInterpreter,
        as_resolver: Optional[Callable[[Snapshot, str], int]] = None,
    ):
        self.interpreter = interpreter
        self.layout = interpreter.layout
        self._resolve = as_resolver or (
            lambda snapshot, node: resolve_node_as(snapshot, node, self.layout)
        )

    def resolve_node_as(self, snapshot: Snapshot, node: str) -> int:
        return self._resolve(snapshot, node)

    # -- descriptors --

    def peer_descriptor(self, value: str, kind: KeyKind) -> Optional[SessionDescriptor]:
        """Descriptor for a global or node peer record, None for an empty record."""
        if not value:
            return None
        try:
            record = json.loads(value)
        except ValueError:
            raise NeighborDataError(f"Invalid peer record: {value!r}") from None
        if not isinstance(record, dict) or not record.get("ip"):
            raise NeighborDataError(f"Peer record without address: {value!r}")
        if "as_num" not in record:
            raise NeighborDataError(f"Peer record without AS number: {value!r}")

        address = parse_address(record["ip"])
        label_kind = "Global" if kind == KeyKind.GLOBAL_PEER else "Node"
        return SessionDescriptor(
            address=address,
            remote_as=parse_as_number(record["as_num"]),
            label=make_label(label_kind, address),
        )

    def mesh_descriptor(self, value: str, remote_as: Optional[int]) -> Optional[SessionDescriptor]:
        if not value:
            return None
        address = parse_address(value)
        return SessionDescriptor(address=address, remote_as=remote_as, label=make_label("Mesh", address))

    def mesh_neighbors(self, snapshot: Snapshot, require_as: bool = True) -> List[SessionDescriptor]:
        """Sessions to every other node's addresses.

        Nodes whose AS cannot be resolved are skipped when require_as is set,
        otherwise they are returned without an AS (good enough for removal).
        """
        neighbors = []
        for key in sorted(snapshot):
            interpreted = self.interpreter.interpret(key)
            if interpreted.kind != KeyKind.NODE_ADDRESS or not snapshot[key]:
                continue
            try:
                remote_as = self.resolve_node_as(snapshot, interpreted.node)
            except ASResolutionError as e:
                if require_as:
                    logger.error(f"Skipping mesh neighbor {snapshot[key]}: {e}")
                    continue
                remote_as = None
            try:
                neighbors.append(self.mesh_descriptor(snapshot[key], remote_as))
            except NeighborDataError as e:
                logger.error(f"Skipping mesh neighbor {key}: {e}")
        return neighbors

    def configured_peers(self, snapshot: Snapshot) -> List[SessionDescriptor]:
        """Global peers and this node's own peers."""
        peers = []
        for key in sorted(snapshot):
            interpreted = self.interpreter.interpret(key)
            if interpreted.kind not in (KeyKind.GLOBAL_PEER, KeyKind.NODE_PEER):
                continue
            try:
                descriptor = self.peer_descriptor(snapshot[key], interpreted.kind)
            except NeighborDataError as e:
                logger.error(f"Skipping peer {key}: {e}")
                continue
            if descriptor:
                peers.append(descriptor)
        return peers

    def initial_sessions(self, snapshot: Snapshot) -> List[SessionDescriptor]:
        """Every session the snapshot asks for, derived from scratch."""
        sessions = []
        try:
            mesh = mesh_enabled(snapshot, self.layout)
        except NeighborDataError as e:
            logger.error(f"Ignoring {self.layout.mesh_key}: {e}")
            mesh = DEFAULT_MESH_ENABLED
        if mesh:
            sessions.extend(self.mesh_neighbors(snapshot))
        else:
            logger.info("Node mesh disabled")
        sessions.extend(self.configured_peers(snapshot))
        return sessions

    # -- delta handling --

    def build(
        self,
        action: Action,
        key: str,
        interpreted: InterpretedKey,
        current: Snapshot,
        previous: Snapshot,
    ) -> List[SessionChange]:
        """Session changes for one key, removals first."""
        return (
            self.removals(action, key, interpreted, current, previous)
            + self.additions(action, key, interpreted, current, previous)
        )

    def removals(
        self,
        action: Action,
        key: str,
        interpreted: InterpretedKey,
        current: Snapshot,
        previous: Snapshot,
    ) -> List[SessionChange]:
        """Sessions the key's old value asked for that must go.

        An old value that cannot be parsed never produced a session, so it
        yields nothing to remove.
        """
        kind = interpreted.kind
        if kind in (KeyKind.GLOBAL_PEER, KeyKind.NODE_PEER):
            if action == Action.ADD:
                return []
            return self._removal(key, previous, lambda value: self.peer_descriptor(value, kind))
        if kind == KeyKind.NODE_ADDRESS:
            if action == Action.ADD:
                return []
            return self._removal(key, previous, lambda value: self.mesh_descriptor(value, None))
        if kind == KeyKind.NODE_AS:
            if not mesh_enabled(current, self.layout):
                return []
            return [
                SessionChange(SessionOp.REMOVE, self.mesh_descriptor(address, None))
                for address in self._node_addresses(interpreted.node, current)
            ]
        if kind == KeyKind.MESH_TOGGLE and not mesh_enabled(current, self.layout):
            logger.info("Node mesh disabled")
            return [
                SessionChange(SessionOp.REMOVE, descriptor)
                for descriptor in self.mesh_neighbors(current, require_as=False)
            ]
        return []

    def additions(
        self,
        action: Action,
        key: str,
        interpreted: InterpretedKey,
        current: Snapshot,
        previous: Snapshot,
    ) -> List[SessionChange]:
        """Sessions the key's new value asks for.

        Raises NeighborDataError (including ASResolutionError) when the new
        value cannot be turned into a session.
        """
        kind = interpreted.kind
        if kind == KeyKind.NODE_AS:
            return self._node_as_additions(interpreted.node, current)
        if kind == KeyKind.MESH_TOGGLE:
            if not mesh_enabled(current, self.layout):
                return []
            logger.info("Node mesh enabled")
            return [
                SessionChange(SessionOp.ADD, descriptor)
                for descriptor in self.mesh_neighbors(current)
            ]
        if action == Action.REMOVE:
            return []
        value = current.get(key, "")
        if kind in (KeyKind.GLOBAL_PEER, KeyKind.NODE_PEER):
            new = self.peer_descriptor(value, kind)
            return [SessionChange(SessionOp.ADD, new)] if new else []
        if kind == KeyKind.NODE_ADDRESS:
            return self._address_additions(interpreted.node, value, current)
        return []

    def _removal(self, key, previous, parse) -> List[SessionChange]:
        try:
            old = parse(previous.get(key, ""))
        except NeighborDataError as e:
            logger.debug(f"Nothing to remove for {key}: {e}")
            return []
        return [SessionChange(SessionOp.REMOVE, old)] if old else []

    def _address_additions(self, node, value, current) -> List[SessionChange]:
        if not value:
            return []
        if not mesh_enabled(current, self.layout):
            logger.debug(f"Node mesh disabled, not peering with {value}")
            return []
        remote_as = self.resolve_node_as(current, node)
        return [SessionChange(SessionOp.ADD, self.mesh_descriptor(value, remote_as))]

    def _node_addresses(self, node, snapshot) -> List[str]:
        addresses = [
            snapshot.get(self.layout.node_address_key(node, version), "")
            for version in (4, 6)
        ]
        return [address for address in addresses if address]

    def _node_as_additions(self, node, current) -> List[SessionChange]:
        if not mesh_enabled(current, self.layout):
            return []
        addresses = self._node_addresses(node, current)
        if not addresses:
            return []
        remote_as = self.resolve_node_as(current, node)
        return [
            SessionChange(SessionOp.ADD, self.mesh_descriptor(address, remote_as))
            for address in addresses
        ]
