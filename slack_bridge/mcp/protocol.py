"""
JSON-RPC 2.0 envelope helpers and MCP protocol constants.
"""
from typing import Any, Dict, Optional

JSONRPC_VERSION = "2.0"

LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

SERVER_NAME = "slack-mcp-server"
SERVER_VERSION = "1.0.0"

SESSION_HEADER = "Mcp-Session-Id"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# MCP server-defined range
SERVER_ERROR = -32000
REQUEST_TIMEOUT = -32001


class McpError(Exception):
    """Protocol-level error that is reported in a JSON-RPC error envelope"""
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class SessionClosedError(Exception):
    """Raised when a message reaches an engine that has already closed"""
    pass


def error_response(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "error": {"code": code, "message": message},
        "id": request_id,
    }


def result_response(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


def is_request(message: Any) -> bool:
    return isinstance(message, dict) and "method" in message and "id" in message


def is_notification(message: Any) -> bool:
    return isinstance(message, dict) and "method" in message and "id" not in message


def is_initialize_request(body: Any) -> bool:
    """True for a single well-formed ``initialize`` request"""
    return (
        isinstance(body, dict)
        and body.get("jsonrpc") == JSONRPC_VERSION
        and body.get("method") == "initialize"
        and body.get("id") is not None
        and isinstance(body.get("params"), dict)
    )
