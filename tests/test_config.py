"""Tests for coordinator configuration."""

from pathlib import Path

import pytest

from session_coordinator.config import (
    CoordinatorConfig,
    CosmosAuthMethod,
    MetricsSinkKind,
    ProfileBackend,
)
from session_coordinator.exceptions import ConfigurationError


class TestDefaults:
    """Tests for default values and coercion."""

    def test_defaults(self) -> None:
        config = CoordinatorConfig()

        assert config.profile_backend is ProfileBackend.MEMORY
        assert config.metrics_sink is MetricsSinkKind.NONE
        assert config.cosmos_auth_method is CosmosAuthMethod.KEY
        assert config.event_history_limit == 100
        assert config.page_view_history_limit == 50
        assert config.atomic_login_count is False
        config.validate()

    def test_strings_coerced(self) -> None:
        """Test string values become enums and integers."""
        config = CoordinatorConfig(profile_backend="Local", metrics_sink="jsonl", event_history_limit="10", log_level="debug")

        assert config.profile_backend is ProfileBackend.LOCAL
        assert config.metrics_sink is MetricsSinkKind.JSONL
        assert config.event_history_limit == 10
        assert config.log_level == "DEBUG"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            CoordinatorConfig(profile_backend="redis")

        assert exc_info.value.field == "profile_backend"

    @pytest.mark.parametrize("limit", [0, -5, "many"])
    def test_invalid_limit(self, limit) -> None:
        with pytest.raises(ConfigurationError):
            CoordinatorConfig(page_view_history_limit=limit)


class TestValidate:
    """Tests for backend requirements."""

    def test_cosmos_requires_endpoint(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            CoordinatorConfig(profile_backend=ProfileBackend.COSMOS, cosmos_key="k").validate()

        assert exc_info.value.field == "cosmos_endpoint"

    def test_cosmos_key_auth_requires_key(self) -> None:
        config = CoordinatorConfig(profile_backend="cosmos", cosmos_endpoint="https://example")

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.field == "cosmos_key"

    def test_cosmos_default_credential_needs_no_key(self) -> None:
        CoordinatorConfig(
            profile_backend="cosmos",
            cosmos_endpoint="https://example",
            cosmos_auth_method="default_credential",
        ).validate()

    def test_jsonl_requires_path(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            CoordinatorConfig(metrics_sink="jsonl").validate()

        assert exc_info.value.field == "metrics_path"


class TestFromEnvironment:
    """Tests for environment loading."""

    def test_reads_prefixed_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SESSION_COORDINATOR_PROFILE_BACKEND", "cosmos")
        monkeypatch.setenv("SESSION_COORDINATOR_EVENT_HISTORY_LIMIT", "25")
        monkeypatch.setenv("SESSION_COORDINATOR_ATOMIC_LOGIN_COUNT", "true")
        monkeypatch.setenv("COSMOS_ENDPOINT", "https://example.documents.azure.com:443/")
        monkeypatch.setenv("COSMOS_AUTH_METHOD", "default_credential")
        monkeypatch.setenv("COSMOS_DATABASE", "app-db")

        config = CoordinatorConfig.from_environment()

        assert config.profile_backend is ProfileBackend.COSMOS
        assert config.event_history_limit == 25
        assert config.atomic_login_count is True
        assert config.cosmos_auth_method is CosmosAuthMethod.DEFAULT_CREDENTIAL
        assert config.cosmos_database == "app-db"
        assert config.cosmos_container == "profiles"

    def test_empty_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("SESSION_COORDINATOR_PROFILE_BACKEND", "SESSION_COORDINATOR_ATOMIC_LOGIN_COUNT"):
            monkeypatch.delenv(name, raising=False)

        config = CoordinatorConfig.from_environment()

        assert config.profile_backend is ProfileBackend.MEMORY
        assert config.atomic_login_count is False


class TestFromYaml:
    """Tests for YAML settings files."""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert CoordinatorConfig.from_yaml(tmp_path / "missing.yaml") == CoordinatorConfig()

    def test_reads_coordinator_section(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "coordinator:\n"
            "  profile_backend: local\n"
            "  local_path: /tmp/profiles\n"
            "  metrics_sink: log\n"
            "  page_view_history_limit: 5\n"
            "other:\n"
            "  ignored: true\n"
        )

        config = CoordinatorConfig.from_yaml(path)

        assert config.profile_backend is ProfileBackend.LOCAL
        assert config.local_path == "/tmp/profiles"
        assert config.metrics_sink is MetricsSinkKind.LOG
        assert config.page_view_history_limit == 5

    def test_unknown_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("coordinator:\n  history: 10\n")

        with pytest.raises(ConfigurationError) as exc_info:
            CoordinatorConfig.from_yaml(path)

        assert "history" in exc_info.value.reason

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("coordinator: [unclosed\n")

        with pytest.raises(ConfigurationError):
            CoordinatorConfig.from_yaml(path)
