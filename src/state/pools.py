"""BGP Sync Agent - IP Pool Cache

Authoritative table of address pools keyed by CIDR, fed by the pool sync
cycle and queried by anything that needs to know which pool a prefix
belongs to.
"""
import ipaddress
import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

from state.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


class PoolDataError(ValueError):
    """A pool entry that cannot be stored."""


@dataclass(frozen=True)
class IPPool:
    cidr: str
    ipip: str = ""
    ipip_mode: str = ""
    masquerade: bool = False
    ipam: bool = True
    disabled: bool = False

    @classmethod
    def from_json(cls, raw: str) -> "IPPool":
        if not raw:
            raise PoolDataError("Empty pool entry")
        try:
            data = json.loads(raw)
        except ValueError:
            raise PoolDataError(f"Invalid pool entry: {raw!r}") from None
        if not isinstance(data, dict):
            raise PoolDataError(f"Invalid pool entry: {raw!r}")

        cidr = data.get("cidr") or ""
        if not cidr:
            raise PoolDataError(f"Empty cidr: {raw}")
        try:
            cidr = str(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            raise PoolDataError(f"Invalid cidr: {raw}") from None

        return cls(
            cidr=cidr,
            ipip=data.get("ipip") or "",
            ipip_mode=data.get("ipip_mode") or "",
            masquerade=bool(data.get("masquerade", False)),
            ipam=bool(data.get("ipam", True)),
            disabled=bool(data.get("disabled", False)),
        )

    @property
    def network(self):
        return ipaddress.ip_network(self.cidr)

    def contains(self, prefix: str) -> bool:
        """Whether the prefix (or address) lies inside this pool."""
        candidate = ipaddress.ip_network(prefix, strict=False)
        network = self.network
        if candidate.version != network.version:
            return False
        return candidate.subnet_of(network)

    def to_dict(self) -> dict:
        return asdict(self)


class PoolCache:
    """Pools keyed by CIDR, safe for concurrent readers and one writer.

    The change handler is called after every effective add or update, outside
    the lock, so it may read the cache. Removals are silent.
    """

    def __init__(self, update_handler: Optional[Callable[[IPPool], None]] = None):
        self._pools: Dict[str, IPPool] = {}
        self._lock = ReadWriteLock()
        self.update_handler = update_handler

    def match(self, prefix: str) -> Optional[IPPool]:
        """First pool containing the prefix, None if there is none.

        Raises ValueError for a malformed prefix.
        """
        ipaddress.ip_network(prefix, strict=False)
        with self._lock.read_locked():
            for pool in self._pools.values():
                if pool.contains(prefix):
                    return pool
        return None

    def pools(self) -> List[IPPool]:
        with self._lock.read_locked():
            return sorted(self._pools.values(), key=lambda p: p.cidr)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._pools)

    def apply(self, raw: str, removal: bool) -> bool:
        """Apply one serialized pool entry.

        Returns True when the table changed. Raises PoolDataError for an
        entry that cannot be parsed or has no CIDR, leaving the table as is.
        """
        logger.debug(f"Update pool cache: {raw} removal={removal}")
        pool = IPPool.from_json(raw)

        with self._lock.write_locked():
            existing = self._pools.get(pool.cidr)
            if removal:
                if existing is None:
                    return False
                del self._pools[pool.cidr]
                logger.info(f"Removed pool {pool.cidr}")
                return True
            if existing == pool:
                logger.debug(f"Pool {pool.cidr} unchanged")
                return False
            self._pools[pool.cidr] = pool

        logger.info(f"{'Updated' if existing else 'Added'} pool {pool.cidr}")
        if self.update_handler is not None:
            self.update_handler(pool)
        return True
