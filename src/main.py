#!/usr/bin/env python3
"""
BGP Sync Agent - Main Entry Point

This agent:
1. Advertises the node's address block through BIRD
2. Polls the control plane's BGP config and keeps BIRD's sessions in line
3. Polls the IP pool config into a cache served over HTTP
4. Exits when the global AS or its own node config changes, so the next
   start re-derives everything from scratch
"""
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_config
from client.control_plane import ControlPlaneClient
from executor.bird import BirdExecutor
from services.neighbors import NeighborBuilder
from services.sessions import BirdSessionManager
from state.keys import KeyInterpreter, KeyLayout
from state.pools import PoolCache
from daemon.peering_sync import PeeringSync
from daemon.pool_sync import PoolSync
from daemon.prefix_sync import PrefixPublisher
from daemon.sync import SyncDaemon

logger = logging.getLogger("bgp-sync-agent")


async def main() -> int:
    """Main entry point. Returns the process exit code."""
    from aiohttp import web
    from api.server import create_app

    config_path = os.environ.get("AGENT_CONFIG", "/opt/bgp-sync-agent/config.json")
    config = load_config(config_path)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.info("BGP Sync Agent starting...")
    logger.info(f"Node: {config.node_name}")
    logger.info(f"Control Plane: {config.control_plane_url}")

    if not config.node_name:
        logger.error("node_name is not configured")
        return 1

    client = ControlPlaneClient(
        base_url=config.control_plane_url,
        node_name=config.node_name,
        api_token=config.control_plane_token,
    )
    bird_executor = BirdExecutor(config.bird_config_dir, config.bird_ctl)
    publisher = PrefixPublisher(bird_executor, config.node_name)

    # Advertise our own block before anything else
    address_block = config.local_address_block or await client.get_address_block()
    if not address_block:
        logger.error("No address block assigned to this node, cannot start")
        await client.close()
        return 1
    try:
        publisher.publish_local_prefix(address_block)
    except ValueError as e:
        logger.error(f"Invalid address block {address_block}: {e}")
        await client.close()
        return 1

    interpreter = KeyInterpreter(
        config.node_name,
        KeyLayout(global_root=config.global_root, nodes_root=config.nodes_root),
    )
    pool_cache = PoolCache()
    pool_cache.update_handler = lambda pool: publisher.publish_pools(pool_cache.pools())

    daemon = SyncDaemon(
        peering_sync=PeeringSync(
            client, BirdSessionManager(bird_executor), interpreter, NeighborBuilder(interpreter)
        ),
        pool_sync=PoolSync(client, pool_cache),
        poll_interval=config.poll_interval,
        pool_interval=config.pool_interval,
    )

    api_app = create_app(config, daemon, pool_cache)
    api_runner = web.AppRunner(api_app)
    await api_runner.setup()
    api_site = web.TCPSite(api_runner, config.api_host, config.api_port)
    await api_site.start()
    logger.info(f"API server started on {config.api_host}:{config.api_port}")

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(daemon.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await daemon.run()
    finally:
        await api_runner.cleanup()
        await client.close()

    if daemon.fatal_reason:
        logger.error(f"Exiting for restart: {daemon.fatal_reason}")
        return 1

    logger.info("BGP Sync Agent stopped")
    return 0


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
