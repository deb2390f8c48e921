"""
Coordinator configuration.

Configuration can be provided directly, read from environment variables, or
loaded from the ``coordinator`` section of a YAML settings file:

```yaml
coordinator:
  profile_backend: cosmos        # memory | local | cosmos
  cosmos_database: app-db
  cosmos_container: profiles
  event_history_limit: 100
  page_view_history_limit: 50
  metrics_sink: log              # none | log | jsonl
  atomic_login_count: false
  log_level: INFO
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

ENV_PREFIX = "SESSION_COORDINATOR_"

DEFAULT_EVENT_HISTORY_LIMIT = 100
DEFAULT_PAGE_VIEW_HISTORY_LIMIT = 50


class ProfileBackend(Enum):
    """Where Profile documents are stored."""

    MEMORY = "memory"
    LOCAL = "local"  # JSON files on disk
    COSMOS = "cosmos"  # Azure Cosmos DB


class MetricsSinkKind(Enum):
    """Which metrics sink telemetry events are forwarded to."""

    NONE = "none"
    LOG = "log"
    JSONL = "jsonl"


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use the account key
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"


@dataclass
class CoordinatorConfig:
    """Configuration for the session service and its collaborators.

    Environment Variables:
        SESSION_COORDINATOR_PROFILE_BACKEND: memory, local or cosmos (default: memory)
        SESSION_COORDINATOR_LOCAL_PATH: Directory for the local profile store
        SESSION_COORDINATOR_EVENT_HISTORY_LIMIT: Event buffer size (default: 100)
        SESSION_COORDINATOR_PAGE_VIEW_HISTORY_LIMIT: Page view buffer size (default: 50)
        SESSION_COORDINATOR_METRICS_SINK: none, log or jsonl (default: none)
        SESSION_COORDINATOR_METRICS_PATH: Output file for the jsonl sink
        SESSION_COORDINATOR_ATOMIC_LOGIN_COUNT: Use store-side increments when available
        SESSION_COORDINATOR_LOG_LEVEL: Log level (default: INFO)
        SESSION_COORDINATOR_STRUCTURED_LOGGING: Emit JSON log records
        COSMOS_ENDPOINT: Cosmos DB endpoint URL
        COSMOS_KEY: Cosmos DB key (if using key auth)
        COSMOS_DATABASE: Database name (default: session-coordinator)
        COSMOS_CONTAINER: Container name (default: profiles)
        COSMOS_AUTH_METHOD: key or default_credential (default: key)
    """

    profile_backend: ProfileBackend = ProfileBackend.MEMORY
    local_path: str | None = None

    # Cosmos DB connection settings
    cosmos_endpoint: str | None = None
    cosmos_key: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.KEY
    cosmos_database: str = "session-coordinator"
    cosmos_container: str = "profiles"

    # Telemetry
    event_history_limit: int = DEFAULT_EVENT_HISTORY_LIMIT
    page_view_history_limit: int = DEFAULT_PAGE_VIEW_HISTORY_LIMIT
    metrics_sink: MetricsSinkKind = MetricsSinkKind.NONE
    metrics_path: str | None = None

    atomic_login_count: bool = False

    log_level: str = "INFO"
    structured_logging: bool = False

    def __post_init__(self) -> None:
        self.profile_backend = _coerce_enum(ProfileBackend, self.profile_backend, "profile_backend")
        self.metrics_sink = _coerce_enum(MetricsSinkKind, self.metrics_sink, "metrics_sink")
        self.cosmos_auth_method = _coerce_enum(
            CosmosAuthMethod, self.cosmos_auth_method, "cosmos_auth_method"
        )
        self.event_history_limit = _coerce_limit(self.event_history_limit, "event_history_limit")
        self.page_view_history_limit = _coerce_limit(
            self.page_view_history_limit, "page_view_history_limit"
        )
        self.log_level = str(self.log_level).upper()

    def validate(self) -> None:
        """Check that the selected backends have what they need.

        Raises:
            ConfigurationError: If a required setting is missing
        """
        if self.profile_backend is ProfileBackend.COSMOS:
            if not self.cosmos_endpoint:
                raise ConfigurationError("cosmos_endpoint", "required for the cosmos backend")
            if self.cosmos_auth_method is CosmosAuthMethod.KEY and not self.cosmos_key:
                raise ConfigurationError("cosmos_key", "required for KEY authentication")
        if self.metrics_sink is MetricsSinkKind.JSONL and not self.metrics_path:
            raise ConfigurationError("metrics_path", "required for the jsonl metrics sink")

    @classmethod
    def from_environment(cls) -> CoordinatorConfig:
        """Create configuration from environment variables."""
        env = os.environ

        def setting(name: str, default: Any = None) -> Any:
            return env.get(f"{ENV_PREFIX}{name}", default)

        return cls(
            profile_backend=setting("PROFILE_BACKEND", "memory"),
            local_path=setting("LOCAL_PATH"),
            cosmos_endpoint=env.get("COSMOS_ENDPOINT"),
            cosmos_key=env.get("COSMOS_KEY"),
            cosmos_auth_method=env.get("COSMOS_AUTH_METHOD", "key"),
            cosmos_database=env.get("COSMOS_DATABASE", "session-coordinator"),
            cosmos_container=env.get("COSMOS_CONTAINER", "profiles"),
            event_history_limit=setting("EVENT_HISTORY_LIMIT", DEFAULT_EVENT_HISTORY_LIMIT),
            page_view_history_limit=setting(
                "PAGE_VIEW_HISTORY_LIMIT", DEFAULT_PAGE_VIEW_HISTORY_LIMIT
            ),
            metrics_sink=setting("METRICS_SINK", "none"),
            metrics_path=setting("METRICS_PATH"),
            atomic_login_count=_parse_bool(setting("ATOMIC_LOGIN_COUNT", "")),
            log_level=setting("LOG_LEVEL", "INFO"),
            structured_logging=_parse_bool(setting("STRUCTURED_LOGGING", "")),
        )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> CoordinatorConfig:
        """Load configuration from the ``coordinator`` section of a YAML file.

        Args:
            config_path: Path to settings.yaml. Defaults to ~/.session-coordinator/settings.yaml

        Returns:
            Configuration; defaults when the file or section is missing

        Raises:
            ConfigurationError: If the file is not valid YAML or has unknown keys
        """
        config_path = config_path or Path.home() / ".session-coordinator" / "settings.yaml"
        if not config_path.exists():
            return cls()

        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(config_path), f"invalid YAML: {e}") from e

        section = data.get("coordinator") or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError("coordinator", f"unknown keys: {', '.join(unknown)}")

        return cls(**section)


def _coerce_enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(name, f"expected one of {allowed}, got {value!r}") from None


def _coerce_limit(value: Any, name: str) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(name, f"expected an integer, got {value!r}") from None
    if limit < 1:
        raise ConfigurationError(name, "must be at least 1")
    return limit


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")
