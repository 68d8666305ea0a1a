"""
BGP Sync Agent - Control Plane Client

Fetches full configuration snapshots. There is no change feed, so every
call re-reads everything.
"""
import asyncio
import logging
from typing import Any, Optional

import aiohttp

from state.snapshot import Snapshot

logger = logging.getLogger(__name__)


class ControlPlaneClient:
    """HTTP client for control-plane API."""

    def __init__(
        self,
        base_url: str,
        node_name: str,
        api_token: Optional[str] = None,
        timeout: int = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.node_name = node_name
        self.api_token = api_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, path: str, what: str, params: dict = None) -> Optional[Any]:
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}{path}", params=params) as resp:
                if resp.status == 200:
                    return await resp.json()
                logger.error(f"Failed to fetch {what}: HTTP {resp.status}")
                return None
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Control-plane error fetching {what}: {e}")
            return None

    async def _get_snapshot(self, path: str, what: str, params: dict = None) -> Optional[Snapshot]:
        data = await self._get_json(path, what, params)
        if data is None:
            return None
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.error(f"Malformed {what} snapshot: expected a flat string map")
            return None
        return data

    async def fetch_peering_snapshot(self) -> Optional[Snapshot]:
        """Fetch the flattened BGP configuration."""
        return await self._get_snapshot(
            "/api/v1/bgp/config", "BGP config", params={"node": self.node_name}
        )

    async def fetch_pool_snapshot(self) -> Optional[Snapshot]:
        """Fetch the flattened IP pool configuration."""
        return await self._get_snapshot("/api/v1/ipam/pools", "IP pools")

    async def get_address_block(self) -> Optional[str]:
        """Address block assigned to this node."""
        data = await self._get_json(f"/api/v1/nodes/{self.node_name}", "node info")
        if not isinstance(data, dict):
            return None
        return data.get("address_block") or None
