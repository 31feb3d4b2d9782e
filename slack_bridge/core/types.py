#!/usr/bin/env python3
"""
Shared type definitions for the core module.

Every Slack capability call returns one of the two result variants below
instead of raising, so REST handlers and MCP tools can branch on it.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Success:
    """Successful capability call carrying operation-specific fields."""
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, **self.data}


@dataclass(frozen=True)
class Failure:
    """Failed capability call with an error code and readable detail."""
    error: str
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": False, "error": self.error}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


CapabilityResult = Union[Success, Failure]
