"""
Unit tests for slack_bridge/core/config.py
"""
import logging

import pytest

from slack_bridge.core.config import Config, ConfigurationError, setup_logging


class TestConfigFromEnv:
    def test_required_values_only(self):
        config = Config.from_env({"SLACK_BOT_TOKEN": "xoxb-1", "API_KEY": "secret"})

        assert config.slack_bot_token == "xoxb-1"
        assert config.api_key == "secret"
        assert config.slack_user_token is None
        assert config.port == 3000
        assert config.host == "0.0.0.0"
        assert config.slack_api_url == "https://slack.com/api"
        assert config.mcp_tool_timeout == 30.0
        assert config.mcp_session_idle_timeout == 3600.0
        assert config.mcp_json_response is False
        assert config.mcp_allowed_origins == []

    def test_overrides(self):
        config = Config.from_env({
            "SLACK_BOT_TOKEN": "xoxb-1",
            "API_KEY": "secret",
            "SLACK_USER_TOKEN": "xoxp-2",
            "PORT": "8080",
            "SLACK_API_URL": "http://slack.test/api/",
            "MCP_JSON_RESPONSE": "true",
            "MCP_ALLOWED_ORIGINS": "http://localhost, https://claude.ai",
            "MCP_SESSION_IDLE_TIMEOUT": "0",
        })

        assert config.slack_user_token == "xoxp-2"
        assert config.port == 8080
        assert config.slack_api_url == "http://slack.test/api"
        assert config.mcp_json_response is True
        assert config.mcp_allowed_origins == ["http://localhost", "https://claude.ai"]
        assert config.mcp_session_idle_timeout == 0

    @pytest.mark.parametrize("environ", [
        {},
        {"SLACK_BOT_TOKEN": "xoxb-1"},
        {"API_KEY": "secret"},
        {"SLACK_BOT_TOKEN": "", "API_KEY": "secret"},
    ])
    def test_missing_required_values(self, environ):
        with pytest.raises(ConfigurationError, match="SLACK_BOT_TOKEN and API_KEY"):
            Config.from_env(environ)

    def test_invalid_port(self):
        with pytest.raises(ConfigurationError, match="Failed to load configuration"):
            Config.from_env({"SLACK_BOT_TOKEN": "xoxb-1", "API_KEY": "secret", "PORT": "http"})


def test_setup_logging_returns_package_logger():
    logger = setup_logging(Config(slack_bot_token="x", api_key="y", log_level="debug"))

    assert logger.name == "slack_bridge"
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
