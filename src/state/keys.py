"""BGP Sync Agent - Key Interpreter

Classifies flattened configuration keys into what they configure.

Key layout (roots are configurable, defaults shown):

    global/as_num                      global AS number
    global/node_mesh                   {"enabled": true|false}
    global/peer_v4/<ip>                global peer record
    allnodes/<node>/ip_addr_v4         node address (also ip_addr_v6)
    allnodes/<node>/as_num             node AS number
    allnodes/<node>/peer_v4/<ip>       per-node peer record

Prefixes overlap, so rules are evaluated top-to-bottom and the first match
wins.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

ADDRESS_SEGMENTS = {"ip_addr_v4": 4, "ip_addr_v6": 6}
AS_SEGMENT = "as_num"
# <node>/<attribute> after the nodes root
MIN_NODE_SEGMENTS = 2


class KeyKind(Enum):
    GLOBAL_AS = "global_as"
    MESH_TOGGLE = "mesh_toggle"
    GLOBAL_PEER = "global_peer"
    NODE_PEER = "node_peer"
    LOCAL_IDENTITY = "local_identity"
    NODE_ADDRESS = "node_address"
    NODE_AS = "node_as"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class InterpretedKey:
    kind: KeyKind
    node: Optional[str] = None
    ip_version: Optional[int] = None

    @property
    def is_fatal(self) -> bool:
        """Changes to these keys cannot be repaired incrementally."""
        return self.kind in (KeyKind.GLOBAL_AS, KeyKind.LOCAL_IDENTITY)


UNRECOGNIZED = InterpretedKey(KeyKind.UNRECOGNIZED)


@dataclass(frozen=True)
class KeyLayout:
    """Where things live in the flattened key space."""
    global_root: str = "global"
    nodes_root: str = "allnodes"

    @property
    def global_as_key(self) -> str:
        return f"{self.global_root}/as_num"

    @property
    def mesh_key(self) -> str:
        return f"{self.global_root}/node_mesh"

    @property
    def global_peer_prefix(self) -> str:
        return f"{self.global_root}/peer_"

    @property
    def nodes_prefix(self) -> str:
        return f"{self.nodes_root}/"

    def node_root(self, node: str) -> str:
        return f"{self.nodes_root}/{node}"

    def node_peer_prefix(self, node: str) -> str:
        return f"{self.nodes_root}/{node}/peer_"

    def node_address_key(self, node: str, version: int) -> str:
        return f"{self.nodes_root}/{node}/ip_addr_v{version}"

    def node_as_key(self, node: str) -> str:
        return f"{self.nodes_root}/{node}/{AS_SEGMENT}"


class Rule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    classify: Callable[[str], InterpretedKey]


class KeyInterpreter:
    """Maps a key string to an InterpretedKey.

    The result depends only on the key, the layout and the local node name.
    Every key under our own node root except our peers is LOCAL_IDENTITY,
    so our own address and AS are never treated as a mesh neighbor's.
    """

    def __init__(self, node_name: str, layout: Optional[KeyLayout] = None):
        self.node_name = node_name
        self.layout = layout or KeyLayout()
        self.rules: List[Rule] = self._build_rules()

    def _build_rules(self) -> List[Rule]:
        layout = self.layout
        local_root = layout.node_root(self.node_name)
        local_peer_prefix = layout.node_peer_prefix(self.node_name)

        return [
            Rule(
                "global_peer",
                lambda key: key.startswith(layout.global_peer_prefix),
                lambda key: InterpretedKey(KeyKind.GLOBAL_PEER),
            ),
            Rule(
                "local_peer",
                lambda key: key.startswith(local_peer_prefix),
                lambda key: InterpretedKey(KeyKind.NODE_PEER, node=self.node_name),
            ),
            # Everything else under our own node root, addresses and AS included.
            Rule(
                "local_identity",
                lambda key: key == local_root or key.startswith(local_root + "/"),
                lambda key: InterpretedKey(KeyKind.LOCAL_IDENTITY, node=self.node_name),
            ),
            Rule(
                "node",
                lambda key: key.startswith(layout.nodes_prefix),
                self._classify_node_key,
            ),
            Rule(
                "global_as",
                lambda key: key == layout.global_as_key,
                lambda key: InterpretedKey(KeyKind.GLOBAL_AS),
            ),
            Rule(
                "mesh_toggle",
                lambda key: key == layout.mesh_key,
                lambda key: InterpretedKey(KeyKind.MESH_TOGGLE),
            ),
        ]

    def _classify_node_key(self, key: str) -> InterpretedKey:
        segments = key[len(self.layout.nodes_prefix):].split("/")
        if len(segments) < MIN_NODE_SEGMENTS:
            return UNRECOGNIZED
        node, attribute = segments[-2], segments[-1]
        if attribute in ADDRESS_SEGMENTS:
            return InterpretedKey(
                KeyKind.NODE_ADDRESS, node=node, ip_version=ADDRESS_SEGMENTS[attribute]
            )
        if attribute == AS_SEGMENT:
            return InterpretedKey(KeyKind.NODE_AS, node=node)
        return UNRECOGNIZED

    def interpret(self, key: str) -> InterpretedKey:
        for rule in self.rules:
            if rule.matches(key):
                return rule.classify(key)
        return UNRECOGNIZED
