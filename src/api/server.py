"""
BGP Sync Agent - API Server

HTTP API for sync status and IP pool lookups.
"""
import logging

from aiohttp import web

from config import AgentConfig
from daemon.sync import SyncDaemon
from state.pools import PoolCache

logger = logging.getLogger(__name__)

CONFIG = web.AppKey("config", AgentConfig)
DAEMON = web.AppKey("daemon", SyncDaemon)
POOL_CACHE = web.AppKey("pool_cache", PoolCache)


# Auth middleware
@web.middleware
async def auth_middleware(request, handler):
    """Verify API secret token."""
    token = request.app[CONFIG].api_token
    if token:
        auth = request.headers.get("Authorization", "")
        if auth != f"Bearer {token}":
            return web.json_response({"error": "Unauthorized"}, status=401)
    return await handler(request)


routes = web.RouteTableDef()


@routes.get("/")
async def index(request):
    """Health check and node info."""
    config = request.app[CONFIG]
    return web.json_response({
        "status": "ok",
        "version": config.agent_version,
        "node": config.node_name,
    })


@routes.get("/status")
async def sync_status(request):
    """Outcome of the last peering and pool sync cycles."""
    return web.json_response(request.app[DAEMON].status())


@routes.get("/pools")
async def list_pools(request):
    """List all cached IP pools."""
    pools = request.app[POOL_CACHE].pools()
    return web.json_response({"pools": [p.to_dict() for p in pools]})


@routes.get("/pools/match")
async def match_pool(request):
    """Find the IP pool containing a prefix."""
    prefix = request.query.get("prefix", "")
    if not prefix:
        return web.json_response({"error": "Missing prefix"}, status=400)

    try:
        pool = request.app[POOL_CACHE].match(prefix)
    except ValueError:
        return web.json_response({"error": f"Invalid prefix: {prefix}"}, status=400)

    if pool is None:
        return web.json_response({"error": "No matching pool"}, status=404)
    return web.json_response({"pool": pool.to_dict()})


def create_app(config: AgentConfig, daemon: SyncDaemon, pool_cache: PoolCache) -> web.Application:
    """Create the API application."""
    app = web.Application(middlewares=[auth_middleware])
    app[CONFIG] = config
    app[DAEMON] = daemon
    app[POOL_CACHE] = pool_cache
    app.add_routes(routes)
    return app
