"""BGP Sync Agent - Prefix Publisher

Announces this node's address block and keeps BIRD's pool prefix filter in
line with the pool cache.
"""
import ipaddress
import logging
from typing import Iterable

from executor.bird import BirdExecutor
from renderer.bird import BirdRenderer
from state.pools import IPPool

logger = logging.getLogger(__name__)

LOCAL_PREFIX_FILE = "local_prefix.conf"
POOLS_FILE = "pools.conf"


class PrefixPublisher:
    def __init__(self, bird_executor: BirdExecutor, node_name: str, renderer: BirdRenderer = None):
        self.bird = bird_executor
        self.node_name = node_name
        self.renderer = renderer or BirdRenderer()

    def publish_local_prefix(self, cidr: str) -> bool:
        """Advertise the local address block. Raises ValueError for a bad CIDR."""
        cidr = str(ipaddress.ip_network(cidr, strict=False))
        config = self.renderer.render_local_prefix(self.node_name, cidr)
        if self.bird.write_config(LOCAL_PREFIX_FILE, config):
            logger.info(f"Advertising local prefix {cidr}")
            self.bird.reload()
            return True
        return False

    def publish_pools(self, pools: Iterable[IPPool]) -> bool:
        """Rewrite the pool prefix filter from the full pool table."""
        enabled = [pool for pool in pools if not pool.disabled]
        config = self.renderer.render_pools(enabled)
        if self.bird.write_config(POOLS_FILE, config):
            logger.info(f"Pool prefix filter updated ({len(enabled)} pools)")
            self.bird.reload()
            return True
        return False
