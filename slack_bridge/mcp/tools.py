"""
MCP tool descriptors for the Slack capabilities.

Each tool pairs a pydantic argument model (its declared input shape) with a
handler that makes exactly one ``SlackService`` call. The tool table is built
once per engine and is identical for every session.
"""
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Type

from pydantic import BaseModel, Field, StrictInt

from slack_bridge.core.types import CapabilityResult
from slack_bridge.slack.client import SlackService


class SendMessageArgs(BaseModel):
    channel: str = Field(description="User ID or channel ID")
    text: str = Field(description="Message text")


class ReadDmHistoryArgs(BaseModel):
    channel_id: str = Field(description="DM or channel ID")
    limit: StrictInt = Field(default=20, description="Number of messages to fetch")


class SearchMessagesArgs(BaseModel):
    query: str = Field(description="Search query")
    count: StrictInt = Field(default=20, description="Number of results")


class FindUserArgs(BaseModel):
    query: str = Field(description="Name to search for")


class OpenDmArgs(BaseModel):
    user_id: str = Field(description="Slack user ID")


@dataclass(frozen=True)
class Tool:
    """A named MCP tool: argument model plus the capability call it makes"""
    name: str
    description: str
    arguments: Type[BaseModel]
    handler: Callable[[Any], Awaitable[CapabilityResult]]

    def input_schema(self) -> Dict[str, Any]:
        schema = self.arguments.model_json_schema()
        schema.pop("title", None)
        return schema

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


def tool_result(result: CapabilityResult) -> Dict[str, Any]:
    """Wrap a capability result as an MCP ``tools/call`` result.

    Upstream failures stay inside the payload; they are not protocol errors.
    """
    return {
        "content": [{"type": "text", "text": json.dumps(result.to_dict())}],
        "isError": not result.ok,
    }


def build_tools(slack: SlackService) -> Dict[str, Tool]:
    """Register the Slack tools by name"""

    async def send_message(args: SendMessageArgs) -> CapabilityResult:
        return await slack.send_message(args.channel, args.text)

    async def read_dm_history(args: ReadDmHistoryArgs) -> CapabilityResult:
        return await slack.get_channel_history(args.channel_id, args.limit)

    async def search_messages(args: SearchMessagesArgs) -> CapabilityResult:
        return await slack.search_messages(args.query, args.count)

    async def find_user(args: FindUserArgs) -> CapabilityResult:
        return await slack.search_users(args.query)

    async def open_dm(args: OpenDmArgs) -> CapabilityResult:
        return await slack.open_dm(args.user_id)

    tools = [
        Tool("send_message", "Send a Slack message to a user or channel", SendMessageArgs, send_message),
        Tool("read_dm_history", "Read DM or channel message history", ReadDmHistoryArgs, read_dm_history),
        Tool("search_messages", "Search Slack messages", SearchMessagesArgs, search_messages),
        Tool("find_user", "Find a Slack user by name", FindUserArgs, find_user),
        Tool("open_dm", "Open or find a DM channel with a user", OpenDmArgs, open_dm),
    ]
    return {tool.name: tool for tool in tools}
