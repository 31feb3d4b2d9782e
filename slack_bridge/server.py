#!/usr/bin/env python3
"""
Slack bridge HTTP server.

Serves the REST API under ``/api``, the MCP Streamable HTTP endpoint at
``/mcp`` and an unauthenticated ``/health`` check from one aiohttp
application. A single SlackService is shared by every route and session.
"""
import asyncio
import contextlib
import logging
import sys
from typing import AsyncIterator, Optional

from aiohttp import web

from slack_bridge.api.app import RestApi
from slack_bridge.api.auth import require_api_key
from slack_bridge.core.config import Config, ConfigurationError, setup_logging
from slack_bridge.mcp.http_server import McpTransport
from slack_bridge.mcp.session import SessionRegistry, reap_idle_sessions
from slack_bridge.slack.client import SlackService

logger = logging.getLogger(__name__)


class SlackBridgeServer:
    """Wires the Slack client, REST routes and MCP transport into one app"""

    def __init__(
        self,
        config: Config,
        slack: Optional[SlackService] = None,
        registry: Optional[SessionRegistry] = None,
        reap_interval: float = 300.0,
    ) -> None:
        self.config = config
        self.slack = slack if slack is not None else SlackService(
            config.slack_bot_token,
            user_token=config.slack_user_token,
            api_url=config.slack_api_url,
            timeout=config.slack_timeout,
        )
        if registry is None:
            registry = SessionRegistry(self.slack, tool_timeout=config.mcp_tool_timeout)
        self.registry = registry
        self.reap_interval = reap_interval

        self.rest = RestApi(self.slack)
        self.transport = McpTransport(
            self.registry,
            api_key=config.api_key,
            json_response=config.mcp_json_response,
            allowed_origins=config.mcp_allowed_origins,
        )

        self.app = web.Application(middlewares=[require_api_key(config.api_key)])
        self.rest.register(self.app)
        self.transport.register(self.app)
        self.app.cleanup_ctx.append(self._lifecycle)

    async def _lifecycle(self, app: web.Application) -> AsyncIterator[None]:
        reaper: Optional[asyncio.Task] = None
        if self.config.mcp_session_idle_timeout > 0:
            reaper = asyncio.create_task(
                reap_idle_sessions(self.registry, self.config.mcp_session_idle_timeout, self.reap_interval)
            )

        yield

        if reaper is not None:
            reaper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reaper
        self.registry.close_all()
        await self.slack.close()

    async def start(self) -> None:
        """Start the HTTP server and serve until cancelled"""
        host, port = self.config.host, self.config.port
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, host, port)
        await site.start()

        logger.info(f"Slack bridge listening on http://{host}:{port}")
        logger.info(f"MCP endpoint: http://{host}:{port}/mcp")

        try:
            await asyncio.Future()
        finally:
            await runner.cleanup()


def create_app(config: Config, slack: Optional[SlackService] = None,
               registry: Optional[SessionRegistry] = None) -> web.Application:
    return SlackBridgeServer(config, slack=slack, registry=registry).app


def main() -> None:
    """Main entry point"""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(str(e))
        sys.exit(1)

    setup_logging(config)
    server = SlackBridgeServer(config)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Slack bridge shutting down...")


if __name__ == "__main__":
    main()
