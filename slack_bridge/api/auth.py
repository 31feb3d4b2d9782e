"""
Shared-secret authentication for the REST and MCP surfaces.
"""
import hmac
import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def is_authorized(request: web.Request, api_key: str) -> bool:
    """Constant-time comparison of the request's API key header"""
    provided: Optional[str] = request.headers.get(API_KEY_HEADER)
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), api_key.encode("utf-8"))


def unauthorized_response() -> web.Response:
    return web.json_response(
        {"ok": False, "error": "unauthorized", "detail": "Missing or invalid API key"},
        status=401,
    )


def rpc_unauthorized_response() -> web.Response:
    return web.json_response(
        {
            "jsonrpc": "2.0",
            "error": {"code": -32000, "message": "Unauthorized: invalid or missing API key"},
            "id": None,
        },
        status=401,
    )


def require_api_key(api_key: str, prefix: str = "/api") -> Callable:
    """Build a middleware that guards every route under ``prefix``"""

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        path = request.path
        if path == prefix or path.startswith(prefix + "/"):
            if not is_authorized(request, api_key):
                logger.info(f"Rejected unauthenticated {request.method} {path}")
                return unauthorized_response()
        return await handler(request)

    return middleware
