"""Slack Web API integration module."""

from slack_bridge.slack.client import SlackApiError, SlackService

__all__ = [
    "SlackApiError",
    "SlackService",
]
