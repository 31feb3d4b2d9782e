"""
Core module for the Slack bridge

Contains:
- Config: environment-driven process configuration
- Success / Failure: tagged capability results
"""

from .config import Config, ConfigurationError, setup_logging
from .types import CapabilityResult, Failure, Success

__all__ = [
    "Config",
    "ConfigurationError",
    "setup_logging",
    "CapabilityResult",
    "Failure",
    "Success",
]
