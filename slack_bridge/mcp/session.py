"""
MCP session registry.

Maps session ids to live ``Session`` objects. The registry owns every
session it holds: an engine closing removes its entry, and removing an entry
closes its engine. All mutations complete without awaiting, so concurrent
handlers on the event loop see either the old or the new mapping.
"""
import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from slack_bridge.mcp.engine import McpEngine
from slack_bridge.slack.client import SlackService

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class Session:
    """Represents an MCP session"""
    id: str
    engine: McpEngine
    created_at: datetime
    last_activity: datetime
    event_counter: int = 0

    def generate_event_id(self) -> str:
        """Generate a unique event ID for SSE"""
        self.event_counter += 1
        return f"{self.id}-{self.event_counter}"

    def touch(self) -> None:
        self.last_activity = datetime.now()

    def idle_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or datetime.now()) - self.last_activity).total_seconds()


class SessionRegistry:
    """Process-wide session id -> Session mapping"""

    def __init__(
        self,
        slack: SlackService,
        tool_timeout: Optional[float] = 30.0,
        id_factory: Callable[[], str] = generate_session_id,
    ):
        self.slack = slack
        self.tool_timeout = tool_timeout
        self._id_factory = id_factory
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self) -> Session:
        """Create a session with a fresh id and its own engine"""
        session_id = self._id_factory()
        while session_id in self._sessions:
            session_id = self._id_factory()

        engine = McpEngine(self.slack, session_id, tool_timeout=self.tool_timeout)
        now = datetime.now()
        session = Session(id=session_id, engine=engine, created_at=now, last_activity=now)
        self._sessions[session_id] = session
        engine.on_close(lambda: self.remove(session_id))

        logger.info(f"Created MCP session {session_id} ({len(self._sessions)} active)")
        return session

    def lookup(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        """Drop a session and close its engine; idempotent"""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.engine.close()
        logger.info(f"Removed MCP session {session_id} ({len(self._sessions)} active)")

    def expire_idle(self, max_idle: float) -> List[str]:
        """Close every session idle for longer than ``max_idle`` seconds"""
        now = datetime.now()
        expired = [sid for sid, s in self._sessions.items() if s.idle_seconds(now) > max_idle]
        for sid in expired:
            self.remove(sid)
            logger.info(f"Cleaned up expired session: {sid}")
        return expired

    def close_all(self) -> None:
        for sid in list(self._sessions):
            self.remove(sid)


async def reap_idle_sessions(registry: SessionRegistry, max_idle: float, interval: float = 300.0) -> None:
    """Periodic cleanup of inactive sessions"""
    while True:
        await asyncio.sleep(interval)
        try:
            registry.expire_idle(max_idle)
        except Exception:
            logger.exception("Error in session cleanup")
