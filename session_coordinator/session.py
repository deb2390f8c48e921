"""
Session service.

Composition root for the coordinator. One instance is built per
application and passed by reference to whatever needs identity state or
telemetry; there is no module-level singleton.

Usage:
    provider = InMemoryIdentityProvider()
    async with SessionService.from_config(CoordinatorConfig.from_environment(), provider) as service:
        await service.coordinator.login("alice@example.com", "secret", remember=True)
        service.telemetry.record_page_view("/dashboard")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .config import CoordinatorConfig, MetricsSinkKind, ProfileBackend
from .exceptions import ConfigurationError
from .identity.coordinator import IdentityStateCoordinator
from .identity.persistence import SessionPersistencePolicy
from .identity.provider import IdentityProvider
from .logging_utils import configure_structured_logging
from .profile.local import LocalProfileStore
from .profile.memory import InMemoryProfileStore
from .profile.store import ProfileStore
from .profile.synchronizer import ProfileSynchronizer
from .telemetry.aggregator import TelemetryAggregator
from .telemetry.sinks import JsonlMetricsSink, LoggingMetricsSink, MetricsSink

logger = logging.getLogger(__name__)


def create_profile_store(config: CoordinatorConfig) -> ProfileStore:
    """Build the profile store selected by configuration."""
    if config.profile_backend is ProfileBackend.LOCAL:
        return LocalProfileStore(config.local_path)
    if config.profile_backend is ProfileBackend.COSMOS:
        # Imported lazily so azure-cosmos is only loaded when used
        from .profile.cosmos import CosmosProfileStore

        return CosmosProfileStore.from_config(config)
    return InMemoryProfileStore()


def create_metrics_sink(config: CoordinatorConfig) -> MetricsSink | None:
    """Build the metrics sink selected by configuration."""
    if config.metrics_sink is MetricsSinkKind.LOG:
        return LoggingMetricsSink()
    if config.metrics_sink is MetricsSinkKind.JSONL:
        if not config.metrics_path:
            raise ConfigurationError("metrics_path", "required for the jsonl metrics sink")
        return JsonlMetricsSink(Path(config.metrics_path))
    return None


class SessionService:
    """Owns the coordinator, the telemetry aggregator and their collaborators."""

    def __init__(
        self,
        provider: IdentityProvider,
        profile_store: ProfileStore,
        config: CoordinatorConfig | None = None,
        metrics_sink: MetricsSink | None = None,
        clock: Any = None,
    ):
        self.config = config or CoordinatorConfig()
        self.provider = provider
        self.profile_store = profile_store
        self.metrics_sink = metrics_sink

        self.persistence = SessionPersistencePolicy(provider)
        self.synchronizer = ProfileSynchronizer(
            profile_store, atomic_increment=self.config.atomic_login_count
        )
        self.coordinator = IdentityStateCoordinator(provider, self.synchronizer, self.persistence)

        telemetry_kwargs: dict[str, Any] = {}
        if clock is not None:
            telemetry_kwargs["clock"] = clock
        self.telemetry = TelemetryAggregator(
            sink=metrics_sink,
            event_history_limit=self.config.event_history_limit,
            page_view_history_limit=self.config.page_view_history_limit,
            **telemetry_kwargs,
        )
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: CoordinatorConfig,
        provider: IdentityProvider,
        configure_logging: bool = False,
    ) -> SessionService:
        """Build a service with the store and sink selected by ``config``.

        Args:
            config: Validated before anything is constructed
            provider: The identity provider to coordinate
            configure_logging: Also install the structured JSON log handler

        Raises:
            ConfigurationError: If the configuration is incomplete
        """
        config.validate()
        if configure_logging and config.structured_logging:
            configure_structured_logging(config.log_level)
        return cls(
            provider=provider,
            profile_store=create_profile_store(config),
            config=config,
            metrics_sink=create_metrics_sink(config),
        )

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Subscribe the coordinator to provider notifications."""
        if self._started:
            return
        await self.coordinator.start()
        self._started = True
        logger.info(
            "Session service started (backend=%s, sink=%s)",
            self.config.profile_backend.value,
            self.config.metrics_sink.value,
        )

    async def close(self) -> None:
        """Unsubscribe and release store and sink resources."""
        await self.coordinator.close()
        await self.profile_store.close()
        if self.metrics_sink is not None:
            self.metrics_sink.close()
        self._started = False

    async def __aenter__(self) -> SessionService:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
