"""
Per-session MCP protocol engine.

An engine is created already bound to its session and starts ACTIVE. It
dispatches JSON-RPC requests to the registered Slack tools and owns the
outbound queue that feeds the session's GET stream. ``close()`` moves it to
CLOSED for good and fires the teardown callbacks exactly once.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from slack_bridge.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    REQUEST_TIMEOUT,
    SERVER_NAME,
    SERVER_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    McpError,
    SessionClosedError,
    error_response,
    notification,
    result_response,
)
from slack_bridge.mcp.tools import Tool, build_tools, tool_result
from slack_bridge.slack.client import SlackService

logger = logging.getLogger(__name__)


class EngineState(Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class McpEngine:
    """MCP server state machine for a single session"""

    def __init__(self, slack: SlackService, session_id: str, tool_timeout: Optional[float] = 30.0):
        self.session_id = session_id
        self.tools: Dict[str, Tool] = build_tools(slack)
        self.tool_timeout = tool_timeout
        self.state = EngineState.ACTIVE
        self.initialized = False
        self.protocol_version: Optional[str] = None
        self.client_info: Dict[str, Any] = {}

        self._in_flight: Set[Any] = set()
        self._outbound: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self._stream_attached = False
        self._close_callbacks: List[Callable[[], None]] = []

    @property
    def closed(self) -> bool:
        return self.state is EngineState.CLOSED

    @property
    def in_flight(self) -> Set[Any]:
        return set(self._in_flight)

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def close(self) -> None:
        """Transition to CLOSED; idempotent"""
        if self.closed:
            return
        self.state = EngineState.CLOSED
        if self._in_flight:
            logger.info(f"Session {self.session_id} closed with {len(self._in_flight)} request(s) in flight")
        self._outbound.put_nowait(None)

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    # ------------------------------------------------------------------
    # Server-to-client stream
    # ------------------------------------------------------------------

    def attach_stream(self) -> bool:
        """Claim the single standalone GET stream for this session"""
        if self._stream_attached or self.closed:
            return False
        self._stream_attached = True
        return True

    def detach_stream(self) -> None:
        self._stream_attached = False

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> bool:
        """Queue a server-initiated notification; dropped if no stream is open"""
        if self.closed or not self._stream_attached:
            return False
        self._outbound.put_nowait(notification(method, params))
        return True

    async def next_outbound(self) -> Optional[Dict[str, Any]]:
        """Next message for the GET stream, or None once the engine closes"""
        if self.closed and self._outbound.empty():
            return None
        return await self._outbound.get()

    # ------------------------------------------------------------------
    # Client-to-server messages
    # ------------------------------------------------------------------

    async def handle_messages(self, messages: List[Any]) -> List[Dict[str, Any]]:
        """Process a POSTed batch and return replies for its requests, in order.

        Raises:
            SessionClosedError: the engine closed before or while handling
        """
        if self.closed:
            raise SessionClosedError(self.session_id)

        replies: List[Dict[str, Any]] = []
        for message in messages:
            if not isinstance(message, dict):
                replies.append(error_response(INVALID_REQUEST, "Invalid Request"))
            elif "method" not in message:
                # Client response to a server request; this server never issues any
                logger.debug(f"Ignoring client response on session {self.session_id}")
            elif "id" not in message:
                self._handle_notification(message)
            else:
                replies.append(await self.handle_request(message))

        if self.closed:
            raise SessionClosedError(self.session_id)
        return replies

    def _handle_notification(self, message: Dict[str, Any]) -> None:
        method = message.get("method")
        if method == "notifications/initialized":
            logger.info(f"Session {self.session_id} client ready")
        else:
            logger.debug(f"Ignoring notification {method} on session {self.session_id}")

    async def handle_request(self, message: Dict[str, Any]) -> Dict[str, Any]:
        request_id = message.get("id")
        method = message.get("method")
        params = message.get("params")

        if not isinstance(method, str) or not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
            return error_response(INVALID_REQUEST, "Invalid Request", request_id if isinstance(request_id, (str, int)) else None)
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return error_response(INVALID_PARAMS, "params must be an object", request_id)

        if request_id in self._in_flight:
            return error_response(INVALID_REQUEST, f"Request id {request_id!r} is already in flight", request_id)

        self._in_flight.add(request_id)
        try:
            result = await self._dispatch(method, params)
            return result_response(request_id, result)
        except McpError as e:
            return error_response(e.code, e.message, request_id)
        except Exception:
            logger.exception(f"Unhandled error in {method} on session {self.session_id}")
            return error_response(INTERNAL_ERROR, "Internal error", request_id)
        finally:
            self._in_flight.discard(request_id)

    async def _dispatch(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if not self.initialized:
            raise McpError(INVALID_REQUEST, "Server not initialized")
        if method == "tools/list":
            return {"tools": [tool.describe() for tool in self.tools.values()]}
        if method == "tools/call":
            return await self._call_tool(params)
        raise McpError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.initialized:
            raise McpError(INVALID_REQUEST, "Server already initialized")

        requested = params.get("protocolVersion")
        if requested in SUPPORTED_PROTOCOL_VERSIONS:
            self.protocol_version = requested
        else:
            self.protocol_version = LATEST_PROTOCOL_VERSION
        client_info = params.get("clientInfo")
        self.client_info = client_info if isinstance(client_info, dict) else {}
        self.initialized = True

        logger.info(
            f"Session {self.session_id} initialized "
            f"(protocol {self.protocol_version}, client {self.client_info.get('name', 'unknown')})"
        )
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        tool = self.tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise McpError(INVALID_PARAMS, f"Tool {name} not found")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        try:
            args = tool.arguments.model_validate(arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors()
            )
            raise McpError(INVALID_PARAMS, f"Invalid arguments for tool {name}: {problems}")

        meta = params.get("_meta")
        progress_token = meta.get("progressToken") if isinstance(meta, dict) else None
        if progress_token is not None:
            self.notify("notifications/progress", {"progressToken": progress_token, "progress": 0, "total": 1})

        try:
            result = await asyncio.wait_for(tool.handler(args), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tool {name} timed out after {self.tool_timeout}s on session {self.session_id}")
            raise McpError(REQUEST_TIMEOUT, "Request timed out")

        if progress_token is not None:
            self.notify("notifications/progress", {"progressToken": progress_token, "progress": 1, "total": 1})
        return tool_result(result)
