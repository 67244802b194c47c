"""
Configuration Dataclasses

Type-safe configuration for the agent.
Loaded from a YAML (or JSON) file, overlaid with environment variables
and command-line flags, then validated once at startup.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

DEFAULT_API_URL = "https://api.cloud-guardian.net/cloudguardian-api/v1/"
API_KEY_LENGTH = 16

_API_KEY_PATTERN = re.compile(r"^[a-z0-9]+$")


def default_config_paths() -> list[Path]:
    """Config search order (first found wins)"""
    home_config = Path.home() / ".config"
    return [
        Path("cloud-guardian.yaml"),
        Path("cloud-guardian.json"),
        home_config / "cloud-guardian.yaml",
        home_config / "cloud-guardian.json",
        Path("/etc/cloud-guardian.yaml"),
        Path("/etc/cloud-guardian.json"),
    ]


def is_valid_api_key(api_key: str) -> bool:
    """A valid API key is 16 lowercase alphanumeric characters"""
    return len(api_key) == API_KEY_LENGTH and bool(_API_KEY_PATTERN.match(api_key))


@dataclass
class AgentConfig:
    """Agent runtime configuration"""
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    debug: bool = False

    # Hex-encoded secp256k1 public keys trusted to sign jobs
    host_security_keys: list[str] = field(default_factory=list)

    # Timeouts
    request_timeout_s: float = 30.0
    command_timeout_s: float = 3600.0

    # Where the config was loaded from (empty when using defaults)
    source: str = ""

    def validate(self) -> None:
        """Raise ConfigError if the configuration cannot be used"""
        if not self.api_url:
            raise ConfigError("api_url cannot be empty")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError("api_url must start with http:// or https://")
        if self.api_key and not is_valid_api_key(self.api_key):
            raise ConfigError(
                f"api_key must be exactly {API_KEY_LENGTH} lowercase alphanumeric characters"
            )
        if self.request_timeout_s <= 0:
            raise ConfigError("request_timeout_s must be positive")
        if self.command_timeout_s <= 0:
            raise ConfigError("command_timeout_s must be positive")

    def normalized(self) -> "AgentConfig":
        """Ensure the API URL ends with a slash"""
        if self.api_url and not self.api_url.endswith("/"):
            self.api_url += "/"
        return self


def load_agent_config(data: dict[str, Any], source: str = "") -> AgentConfig:
    """Load AgentConfig from dictionary (e.g., from a YAML file)"""
    keys = data.get("host_security_keys")
    if keys is None:
        # Single-key form used by older installs
        single = data.get("host_security_key")
        keys = [single] if single else []
    if isinstance(keys, str):
        keys = [keys]
    if not isinstance(keys, list):
        raise ConfigError("host_security_keys must be a list of hex strings")

    try:
        config = AgentConfig(
            api_url=str(data.get("api_url") or DEFAULT_API_URL),
            api_key=str(data.get("api_key") or ""),
            debug=bool(data.get("debug", False)),
            host_security_keys=[str(k).strip() for k in keys if str(k).strip()],
            request_timeout_s=float(data.get("request_timeout_s", 30.0)),
            command_timeout_s=float(data.get("command_timeout_s", 3600.0)),
            source=source,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value in {source or 'config'}: {e}") from e

    config.normalized()
    config.validate()
    return config


def load_config_file(path: str | Path) -> AgentConfig:
    """Load and validate a config file (YAML; JSON is accepted as YAML)"""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping")

    return load_agent_config(raw, source=str(path))


def find_and_load_config(
    config_path: str | None = None,
    search_paths: list[Path] | None = None,
) -> AgentConfig:
    """
    Locate and load the agent configuration.

    An explicit path must exist. Without one, the search paths are tried in
    order and the built-in defaults are used when none exists. Environment
    variables (CLOUD_GUARDIAN_API_URL, CLOUD_GUARDIAN_API_KEY) override the
    file.
    """
    if config_path:
        config = load_config_file(config_path)
    else:
        config = AgentConfig()
        for path in search_paths if search_paths is not None else default_config_paths():
            if path.exists():
                config = load_config_file(path)
                break

    if api_url := os.environ.get("CLOUD_GUARDIAN_API_URL"):
        config.api_url = api_url
    if api_key := os.environ.get("CLOUD_GUARDIAN_API_KEY"):
        config.api_key = api_key

    config.normalized()
    config.validate()
    return config
