"""
Slack Web API capability client.

Wraps the handful of Slack methods the bridge exposes. Every public method
returns a ``Success``/``Failure`` result and never raises: Slack errors,
HTTP failures and timeouts are all converted at this boundary.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

import aiohttp

from slack_bridge.core.types import CapabilityResult, Failure, Success

logger = logging.getLogger(__name__)

USERS_PAGE_SIZE = 200
USERS_MAX_PAGES = 50


class SlackApiError(Exception):
    """Raised internally when Slack answers with ``ok: false``"""
    def __init__(self, error: str, status_code: Optional[int] = None):
        super().__init__(f"An API error occurred: {error}")
        self.error = error
        self.status_code = status_code


class SlackService:
    """Thin async facade over the Slack Web API.

    ``user_token`` is optional; when present it is used for history and
    search, which Slack only fully serves to user tokens.
    """

    def __init__(
        self,
        bot_token: str,
        user_token: Optional[str] = None,
        api_url: str = "https://slack.com/api",
        timeout: float = 30.0,
    ):
        self.bot_token = bot_token
        self.user_token = user_token
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session"""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, params: Dict[str, Any], use_user_token: bool = False) -> Dict[str, Any]:
        """POST a Slack Web API method and return the decoded payload.

        Raises:
            SlackApiError: Slack rejected the call
            aiohttp.ClientError: transport failure
            asyncio.TimeoutError: the call exceeded the configured timeout
        """
        token = self.user_token if (use_user_token and self.user_token) else self.bot_token
        headers = {"Authorization": f"Bearer {token}"}
        # Slack accepts form encoding on every method; drop unset optionals
        data = {k: str(v) for k, v in params.items() if v is not None}

        session = await self._get_session()
        async with session.post(f"{self.api_url}/{method}", data=data, headers=headers) as response:
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                payload = None

            if not isinstance(payload, dict):
                raise SlackApiError(f"http_{response.status}", status_code=response.status)
            if not payload.get("ok"):
                raise SlackApiError(payload.get("error") or "slack_error", status_code=response.status)
            return payload

    async def _guard(self, method: str, coro) -> CapabilityResult:
        try:
            return await coro
        except SlackApiError as e:
            logger.warning(f"Slack {method} failed: {e.error}")
            return Failure(error=e.error, detail=str(e))
        except asyncio.TimeoutError:
            logger.warning(f"Slack {method} timed out after {self.timeout.total}s")
            return Failure(error="timeout", detail=f"Slack {method} timed out")
        except aiohttp.ClientError as e:
            logger.warning(f"Slack {method} request error: {e}")
            return Failure(error="slack_error", detail=str(e) or type(e).__name__)

    async def send_message(self, channel: str, text: str) -> CapabilityResult:
        async def _send() -> CapabilityResult:
            result = await self._call("chat.postMessage", {"channel": channel, "text": text})
            return Success({"ts": result.get("ts"), "channel": result.get("channel")})

        return await self._guard("chat.postMessage", _send())

    async def get_channel_history(
        self,
        channel: str,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> CapabilityResult:
        async def _history() -> CapabilityResult:
            result = await self._call(
                "conversations.history",
                {"channel": channel, "limit": limit, "cursor": cursor},
                use_user_token=True,
            )
            metadata = result.get("response_metadata") or {}
            return Success({
                "messages": result.get("messages") or [],
                "next_cursor": metadata.get("next_cursor") or None,
            })

        return await self._guard("conversations.history", _history())

    async def search_messages(self, query: str, count: int = 20) -> CapabilityResult:
        async def _search() -> CapabilityResult:
            result = await self._call(
                "search.messages",
                {"query": query, "count": count},
                use_user_token=True,
            )
            return Success({"messages": result.get("messages") or {"matches": [], "total": 0}})

        return await self._guard("search.messages", _search())

    async def search_users(self, query: str) -> CapabilityResult:
        """Find workspace members whose name or real name contains ``query``"""
        async def _search() -> CapabilityResult:
            needle = query.lower()
            users: List[Dict[str, Any]] = []
            cursor: Optional[str] = None
            seen_cursors: Set[str] = set()

            for _ in range(USERS_MAX_PAGES):
                result = await self._call("users.list", {"limit": USERS_PAGE_SIZE, "cursor": cursor})
                for member in result.get("members") or []:
                    name = member.get("name") or ""
                    real_name = member.get("real_name") or (member.get("profile") or {}).get("real_name") or ""
                    if needle in name.lower() or needle in real_name.lower():
                        users.append({
                            "id": member.get("id"),
                            "name": member.get("name"),
                            "real_name": real_name or None,
                        })

                cursor = (result.get("response_metadata") or {}).get("next_cursor")
                if not cursor or cursor in seen_cursors:
                    break
                seen_cursors.add(cursor)
            else:
                logger.warning(f"users.list stopped after {USERS_MAX_PAGES} pages for query {query!r}")

            return Success({"users": users})

        return await self._guard("users.list", _search())

    async def open_dm(self, user_id: str) -> CapabilityResult:
        async def _open() -> CapabilityResult:
            result = await self._call("conversations.open", {"users": user_id})
            return Success({"channel": (result.get("channel") or {}).get("id")})

        return await self._guard("conversations.open", _open())
