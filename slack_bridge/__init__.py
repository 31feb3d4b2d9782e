"""
Slack bridge: REST and MCP access to Slack messaging for external bots.
"""
__version__ = "1.0.0"
