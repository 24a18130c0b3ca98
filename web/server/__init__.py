from aiohttp import web

from web.server.readiness import ReadinessGate
from web.server.registry import HandleRegistry
from web.utils.search import CatalogSearch

registry_key = web.AppKey("registry", HandleRegistry)
gate_key = web.AppKey("gate", ReadinessGate)
search_key = web.AppKey("search", CatalogSearch)
auth_users_key = web.AppKey("auth_users", dict)
