"""
Pytest configuration and shared fixtures for Slack bridge tests
"""
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from typing import Any, Dict, Optional

from aiohttp.test_utils import TestClient, TestServer

from slack_bridge.core.config import Config
from slack_bridge.core.types import Failure, Success
from slack_bridge.mcp.protocol import SESSION_HEADER
from slack_bridge.mcp.session import SessionRegistry
from slack_bridge.server import create_app
from slack_bridge.slack.client import SlackService

TEST_API_KEY = "test-key"


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config():
    """Config with the idle reaper disabled and JSON MCP responses"""
    return Config(
        slack_bot_token="xoxb-test",
        api_key=TEST_API_KEY,
        mcp_tool_timeout=5.0,
        mcp_session_idle_timeout=0,
        mcp_json_response=True,
    )


@pytest.fixture
def auth_headers():
    return {"X-API-Key": TEST_API_KEY}


# ============================================================================
# Slack Fixtures
# ============================================================================

@pytest.fixture
def mock_slack():
    """SlackService double whose capability calls succeed by default"""
    slack = AsyncMock(spec=SlackService)
    slack.send_message.return_value = Success({"ts": "1.0", "channel": "C01"})
    slack.get_channel_history.return_value = Success({"messages": [{"text": "hi"}], "next_cursor": None})
    slack.search_messages.return_value = Success({"messages": {"matches": [{"text": "poke"}], "total": 1}})
    slack.search_users.return_value = Success({"users": [{"id": "U01", "name": "ada", "real_name": "Ada Lovelace"}]})
    slack.open_dm.return_value = Success({"channel": "D01"})
    return slack


@pytest.fixture
def channel_not_found():
    return Failure(error="channel_not_found", detail="An API error occurred: channel_not_found")


def mock_slack_response(payload: Any, status: int = 200) -> MagicMock:
    """aiohttp response usable as ``async with session.post(...)``"""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


@pytest.fixture
def mock_aiohttp_session():
    """Mock aiohttp ClientSession for Slack Web API requests"""
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=mock_slack_response({"ok": True}))
    session.close = AsyncMock()
    return session


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def registry(mock_slack, test_config):
    return SessionRegistry(mock_slack, tool_timeout=test_config.mcp_tool_timeout)


@pytest_asyncio.fixture
async def client(test_config, mock_slack, registry):
    """aiohttp test client for the full application"""
    app = create_app(test_config, slack=mock_slack, registry=registry)
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


# ============================================================================
# MCP Helpers
# ============================================================================

def rpc(method: str, params: Optional[Dict[str, Any]] = None, request_id: Any = 1) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": request_id}
    if params is not None:
        message["params"] = params
    return message


def initialize_request(request_id: Any = 0) -> Dict[str, Any]:
    return rpc(
        "initialize",
        {
            "protocolVersion": "2025-03-26",
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "0.1"},
        },
        request_id,
    )


async def open_session(client: TestClient, headers: Dict[str, str]) -> str:
    """Run the initialize handshake and return the new session id"""
    resp = await client.post("/mcp", json=initialize_request(), headers=headers)
    assert resp.status == 200
    session_id = resp.headers[SESSION_HEADER]
    await client.post(
        "/mcp",
        json={"jsonrpc": "2.0", "method": "notifications/initialized"},
        headers={**headers, SESSION_HEADER: session_id},
    )
    return session_id
