"""
MCP Streamable HTTP transport.

A single ``/mcp`` endpoint multiplexes every session:

- POST carries JSON-RPC messages. Without an ``Mcp-Session-Id`` header only an
  ``initialize`` request is accepted, and it creates the session.
- GET opens the session's server-to-client SSE stream.
- DELETE terminates the session.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from aiohttp import web
from yarl import URL

from slack_bridge.api.auth import is_authorized, rpc_unauthorized_response
from slack_bridge.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_ERROR,
    SESSION_HEADER,
    SessionClosedError,
    error_response,
    is_initialize_request,
)
from slack_bridge.mcp.session import Session, SessionRegistry

logger = logging.getLogger(__name__)

BAD_SESSION_MESSAGE = "Bad request: missing session ID or not an init request"
INVALID_SESSION_TEXT = "Invalid or missing session ID"


def _rpc_error(code: int, message: str, status: int) -> web.Response:
    return web.json_response(error_response(code, message), status=status)


def origin_matches(origin: URL, allowed: URL) -> bool:
    """Scheme and host must match exactly; a port is only checked when configured"""
    if origin.scheme != allowed.scheme or origin.host != allowed.host:
        return False
    return allowed.explicit_port is None or origin.port == allowed.port


class McpTransport:
    """Dispatches ``/mcp`` requests onto sessions held by a registry"""

    def __init__(
        self,
        registry: SessionRegistry,
        api_key: str,
        json_response: bool = False,
        allowed_origins: Optional[List[str]] = None,
        keepalive_interval: float = 15.0,
    ):
        self.registry = registry
        self.api_key = api_key
        self.json_response = json_response
        self.allowed_origins = [URL(o) for o in allowed_origins or []]
        self.keepalive_interval = keepalive_interval

    def register(self, app: web.Application, path: str = "/mcp") -> None:
        app.router.add_post(path, self.handle_post)
        app.router.add_get(path, self.handle_get)
        app.router.add_delete(path, self.handle_delete)

    def _validate_origin(self, request: web.Request) -> bool:
        """Validate Origin header to prevent DNS rebinding attacks"""
        origin = request.headers.get("Origin", "")
        if not origin or not self.allowed_origins:
            return True
        try:
            parsed = URL(origin)
        except ValueError:
            logger.info(f"Rejected malformed Origin header {origin!r}")
            return False
        if not parsed.is_absolute():
            return False
        return any(origin_matches(parsed, allowed) for allowed in self.allowed_origins)

    def _precheck(self, request: web.Request) -> Optional[web.Response]:
        if not is_authorized(request, self.api_key):
            return rpc_unauthorized_response()
        if not self._validate_origin(request):
            return _rpc_error(INVALID_REQUEST, "Invalid origin", 403)
        return None

    async def handle_post(self, request: web.Request) -> web.StreamResponse:
        """Handle POST requests to MCP endpoint"""
        rejected = self._precheck(request)
        if rejected is not None:
            return rejected

        accept = request.headers.get("Accept", "*/*")
        if not any(t in accept for t in ("application/json", "text/event-stream", "*/*")):
            return _rpc_error(
                INVALID_REQUEST,
                "Not Acceptable: client must accept application/json or text/event-stream",
                406,
            )

        try:
            body = await request.json()
        except (ValueError, UnicodeDecodeError):
            return _rpc_error(PARSE_ERROR, "Parse error", 400)

        session_id = request.headers.get(SESSION_HEADER)
        created = False
        if session_id:
            session = self.registry.lookup(session_id)
        elif is_initialize_request(body):
            session = self.registry.create()
            created = True
        else:
            session = None

        if session is None:
            logger.info(f"Rejected MCP POST for session {session_id or '<none>'}")
            return _rpc_error(SERVER_ERROR, BAD_SESSION_MESSAGE, 400)

        session.touch()
        is_batch = isinstance(body, list)
        messages = body if is_batch else [body]
        if not messages:
            return _rpc_error(INVALID_REQUEST, "Invalid Request: empty batch", 400)

        stream: Optional[web.StreamResponse] = None
        try:
            replies = await session.engine.handle_messages(messages)

            if created and not session.engine.initialized:
                # The initialize call itself was rejected; do not keep the session
                self.registry.remove(session.id)
                return web.json_response(replies[0] if replies else None, status=400)

            if not replies:
                return web.Response(status=202, headers={SESSION_HEADER: session.id})

            if self.json_response or "text/event-stream" not in accept:
                payload: Any = replies if is_batch else replies[0]
                return web.json_response(payload, headers={SESSION_HEADER: session.id})

            stream = self._new_stream(session)
            await stream.prepare(request)
            for reply in replies:
                await self._write_event(stream, session, reply)
            await stream.write_eof()
            return stream

        except SessionClosedError:
            logger.info(f"Session {session.id} closed while handling POST")
            return _rpc_error(SERVER_ERROR, BAD_SESSION_MESSAGE, 400)
        except Exception:
            if stream is not None and stream.prepared:
                logger.warning(f"MCP POST stream on session {session.id} ended early", exc_info=True)
                return stream
            logger.exception(f"Error handling MCP POST on session {session.id}")
            return _rpc_error(INTERNAL_ERROR, "Internal server error", 500)

    async def handle_get(self, request: web.Request) -> web.StreamResponse:
        """Open the SSE stream for server-initiated messages"""
        rejected = self._precheck(request)
        if rejected is not None:
            return rejected

        session = self.registry.lookup(request.headers.get(SESSION_HEADER))
        if session is None:
            return web.Response(text=INVALID_SESSION_TEXT, status=400)

        accept = request.headers.get("Accept", "")
        if "text/event-stream" not in accept:
            return web.Response(text="Not Acceptable: client must accept text/event-stream", status=406)

        engine = session.engine
        if not engine.attach_stream():
            return web.Response(text="Conflict: only one SSE stream is allowed per session", status=409)

        stream = self._new_stream(session)
        try:
            await stream.prepare(request)
            while True:
                try:
                    message = await asyncio.wait_for(engine.next_outbound(), timeout=self.keepalive_interval)
                except asyncio.TimeoutError:
                    session.touch()
                    await stream.write(b": keepalive\n\n")
                    continue
                if message is None:
                    break
                await self._write_event(stream, session, message)
            await stream.write_eof()
        except ConnectionResetError:
            logger.info(f"Client disconnected from SSE stream on session {session.id}")
        finally:
            engine.detach_stream()

        return stream

    async def handle_delete(self, request: web.Request) -> web.Response:
        """Handle DELETE request to terminate session"""
        rejected = self._precheck(request)
        if rejected is not None:
            return rejected

        session = self.registry.lookup(request.headers.get(SESSION_HEADER))
        if session is None:
            return web.Response(text=INVALID_SESSION_TEXT, status=400)

        session.engine.close()
        logger.info(f"Session {session.id} terminated by client")
        return web.Response(status=200)

    def _new_stream(self, session: Session) -> web.StreamResponse:
        stream = web.StreamResponse()
        stream.headers["Content-Type"] = "text/event-stream"
        stream.headers["Cache-Control"] = "no-cache"
        stream.headers["Connection"] = "keep-alive"
        stream.headers[SESSION_HEADER] = session.id
        return stream

    async def _write_event(self, stream: web.StreamResponse, session: Session, message: Dict[str, Any]) -> None:
        event_id = session.generate_event_id()
        data = f"id: {event_id}\nevent: message\ndata: {json.dumps(message)}\n\n"
        await stream.write(data.encode("utf-8"))
