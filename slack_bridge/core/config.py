"""
Process configuration loaded from environment variables.

Usage:
    from slack_bridge.core.config import Config, setup_logging

    config = Config.from_env()
    setup_logging(config)
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    slack_bot_token: str
    api_key: str
    slack_user_token: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    slack_api_url: str = "https://slack.com/api"
    slack_timeout: float = 30.0
    # MCP transport
    mcp_tool_timeout: float = 30.0
    mcp_session_idle_timeout: float = 3600.0  # 0 disables the idle reaper
    mcp_json_response: bool = False
    mcp_allowed_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Load configuration from environment variables.

        When ``environ`` is omitted, ``.env`` is loaded first and
        ``os.environ`` is used.
        """
        if environ is None:
            load_dotenv('.env')
            environ = os.environ

        slack_bot_token = environ.get("SLACK_BOT_TOKEN", "")
        api_key = environ.get("API_KEY", "")
        if not slack_bot_token or not api_key:
            raise ConfigurationError(
                "SLACK_BOT_TOKEN and API_KEY environment variables are required"
            )

        origins = environ.get("MCP_ALLOWED_ORIGINS", "")

        try:
            return cls(
                slack_bot_token=slack_bot_token,
                api_key=api_key,
                slack_user_token=environ.get("SLACK_USER_TOKEN") or None,
                host=environ.get("HOST", "0.0.0.0"),
                port=int(environ.get("PORT", "3000")),
                log_level=environ.get("LOG_LEVEL", "INFO"),
                slack_api_url=environ.get("SLACK_API_URL", "https://slack.com/api").rstrip("/"),
                slack_timeout=float(environ.get("SLACK_TIMEOUT", "30")),
                mcp_tool_timeout=float(environ.get("MCP_TOOL_TIMEOUT", "30")),
                mcp_session_idle_timeout=float(environ.get("MCP_SESSION_IDLE_TIMEOUT", "3600")),
                mcp_json_response=_parse_bool(environ.get("MCP_JSON_RESPONSE", "false")),
                mcp_allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            )
        except ValueError as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")


def setup_logging(config: Config) -> logging.Logger:
    """Configure root logging for the server process"""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("aiohttp.access").setLevel(max(level, logging.WARNING))
    return logging.getLogger("slack_bridge")
