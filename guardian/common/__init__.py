"""
Common Utilities

Shared modules used across all services:
- api.py - Control API client
- config.py - Configuration dataclasses and loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Minute-counter task scheduler
"""

from .config import AgentConfig, find_and_load_config, load_agent_config, load_config_file
from .exceptions import (
    GuardianError,
    ConfigError,
    ApiError,
    ClientConfigError,
    SignatureFormatError,
    RebootFailure,
    RebootCheckError,
    UptimeError,
    RebootError,
    PackageManagerError,
    CommandError,
    CommandTimeoutError,
)
from .logging_setup import (
    setup_logging,
    setup_logging_from_env,
    get_service_logger,
    LogContext,
)

__all__ = [
    # Config
    "AgentConfig",
    "find_and_load_config",
    "load_agent_config",
    "load_config_file",
    # Exceptions
    "GuardianError",
    "ConfigError",
    "ApiError",
    "ClientConfigError",
    "SignatureFormatError",
    "RebootFailure",
    "RebootCheckError",
    "UptimeError",
    "RebootError",
    "PackageManagerError",
    "CommandError",
    "CommandTimeoutError",
    # Logging
    "setup_logging",
    "setup_logging_from_env",
    "get_service_logger",
    "LogContext",
]
