#!/usr/bin/env python3
"""
Slack REST API - HTTP endpoints for Slack messaging operations

Every protected route validates its inputs, makes one SlackService call and
returns the capability result verbatim: 200 on success, 500 on an upstream
failure.
"""
import logging
from typing import Any, Optional, Tuple, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError

from slack_bridge.api.schemas import OpenDmRequest, SendMessageRequest
from slack_bridge.core.types import CapabilityResult
from slack_bridge.slack.client import SlackService

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_SEARCH_COUNT = 20

ModelT = TypeVar("ModelT", bound=BaseModel)


def bad_request(detail: str) -> web.Response:
    return web.json_response({"ok": False, "error": "bad_request", "detail": detail}, status=400)


def result_response(result: CapabilityResult) -> web.Response:
    return web.json_response(result.to_dict(), status=200 if result.ok else 500)


def _parse_int(value: Optional[str], default: int, name: str) -> Tuple[Optional[int], Optional[str]]:
    if value is None or value == "":
        return default, None
    try:
        return int(value), None
    except ValueError:
        return None, f"{name} must be an integer"


async def _read_body(request: web.Request, model: Type[ModelT]) -> Optional[ModelT]:
    """Parse a JSON body into ``model``; None when it is not a valid object"""
    try:
        data: Any = await request.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        return None


class RestApi:
    """Plain REST surface over a shared SlackService"""

    def __init__(self, slack: SlackService):
        self.slack = slack

    def register(self, app: web.Application, prefix: str = "/api") -> None:
        app.router.add_get("/health", self.handle_health)
        app.router.add_post(f"{prefix}/messages/send", self.handle_send_message)
        app.router.add_get(f"{prefix}/channels/{{channel_id}}/history", self.handle_history)
        app.router.add_get(f"{prefix}/search", self.handle_search)
        app.router.add_get(f"{prefix}/users/search", self.handle_find_user)
        app.router.add_post(f"{prefix}/dm/open", self.handle_open_dm)

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint (no auth)"""
        return web.json_response({"ok": True, "status": "healthy"})

    async def handle_send_message(self, request: web.Request) -> web.Response:
        body = await _read_body(request, SendMessageRequest)
        if body is None or not body.channel or not body.text:
            return bad_request("channel and text are required")

        result = await self.slack.send_message(body.channel, body.text)
        return result_response(result)

    async def handle_history(self, request: web.Request) -> web.Response:
        channel_id = request.match_info["channel_id"]
        limit, error = _parse_int(request.query.get("limit"), DEFAULT_HISTORY_LIMIT, "limit")
        if error:
            return bad_request(error)
        cursor = request.query.get("cursor") or None

        result = await self.slack.get_channel_history(channel_id, limit, cursor)
        return result_response(result)

    async def handle_search(self, request: web.Request) -> web.Response:
        query = request.query.get("query")
        if not query:
            return bad_request("query parameter is required")
        count, error = _parse_int(request.query.get("count"), DEFAULT_SEARCH_COUNT, "count")
        if error:
            return bad_request(error)

        result = await self.slack.search_messages(query, count)
        return result_response(result)

    async def handle_find_user(self, request: web.Request) -> web.Response:
        query = request.query.get("query")
        if not query:
            return bad_request("query parameter is required")

        result = await self.slack.search_users(query)
        return result_response(result)

    async def handle_open_dm(self, request: web.Request) -> web.Response:
        body = await _read_body(request, OpenDmRequest)
        if body is None or not body.user_id:
            return bad_request("user_id is required")

        result = await self.slack.open_dm(body.user_id)
        return result_response(result)

