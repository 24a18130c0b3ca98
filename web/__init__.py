import asyncio
import contextlib
import logging

import aiohttp
from aiohttp import hdrs, web

import info
from web.server import auth_users_key, gate_key, registry_key, search_key
from web.server.readiness import ReadinessGate, ReadinessPolicy
from web.server.registry import HandleRegistry
from web.stream_routes import routes
from web.utils.search import CatalogSearch

logger = logging.getLogger("web_server")


def setup_cors(web_app: web.Application, origins):
    """
    Answer preflights and stamp CORS headers on every response, streamed
    ones included (headers are added just before they are sent).
    """
    allow_all = "*" in origins

    @web.middleware
    async def preflight(request: web.Request, handler):
        if request.method == hdrs.METH_OPTIONS:
            return web.Response(status=204)
        return await handler(request)

    async def add_headers(request: web.Request, response: web.StreamResponse):
        origin = request.headers.get(hdrs.ORIGIN)
        if allow_all:
            allowed = "*"
        elif origin in origins:
            allowed = origin
        else:
            return
        response.headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = allowed
        response.headers[hdrs.ACCESS_CONTROL_ALLOW_METHODS] = "GET, POST"
        response.headers[hdrs.ACCESS_CONTROL_ALLOW_HEADERS] = "Content-Type, Authorization, Range"
        response.headers[hdrs.ACCESS_CONTROL_EXPOSE_HEADERS] = "Content-Range, Accept-Ranges, Content-Length"

    web_app.middlewares.append(preflight)
    web_app.on_response_prepare.append(add_headers)


def web_server(
    engine,
    policy: ReadinessPolicy = None,
    extensions=info.VIDEO_EXTENSIONS,
    auth_users=None,
    search_url=info.SEARCH_API_URL,
    search_limit=info.SEARCH_LIMIT,
    search_timeout=info.SEARCH_TIMEOUT,
    trackers=info.TRACKERS,
    cors_origins=info.CORS_ORIGINS,
    idle_timeout=info.HANDLE_IDLE_TIMEOUT,
    sleep=asyncio.sleep,
) -> web.Application:
    if policy is None:
        policy = ReadinessPolicy(
            retries=info.READY_RETRIES,
            interval=info.READY_INTERVAL,
            event_driven=info.READY_EVENT_DRIVEN,
            health_retries=info.HEALTH_RETRIES,
        )

    web_app = web.Application()
    setup_cors(web_app, cors_origins)
    web_app[registry_key] = HandleRegistry(engine)
    web_app[gate_key] = ReadinessGate(policy, extensions, sleep=sleep)
    web_app[auth_users_key] = dict(info.AUTH_USERS if auth_users is None else auth_users)
    web_app.add_routes(routes)

    async def search_client(app: web.Application):
        timeout = aiohttp.ClientTimeout(total=search_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            app[search_key] = CatalogSearch(session, search_url, search_limit, trackers)
            yield

    web_app.cleanup_ctx.append(search_client)

    if idle_timeout > 0:
        async def idle_cleanup(app: web.Application):
            task = asyncio.create_task(
                app[registry_key].cleanup_idle(idle_timeout, info.HANDLE_CLEANUP_INTERVAL)
            )
            yield
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        web_app.cleanup_ctx.append(idle_cleanup)
        logger.info(f"Idle torrents are dropped after {idle_timeout}s")

    return web_app
