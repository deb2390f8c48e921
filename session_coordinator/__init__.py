"""
Session Coordinator

Client-side session core for a hosted identity platform.

Provides:
- Identity state tracking (unresolved / anonymous / authenticated)
- Profile mirroring with a login counter (memory, local JSON, Cosmos DB)
- Remember-me vs. tab-scoped session persistence
- Bounded usage telemetry with visible-time page-view durations

Usage:

    >>> from session_coordinator import CoordinatorConfig, InMemoryIdentityProvider, SessionService
    >>> provider = InMemoryIdentityProvider()
    >>> async with SessionService.from_config(CoordinatorConfig(), provider) as service:
    ...     await service.coordinator.signup("alice@example.com", "s3cret!", "Alice")
    ...     service.telemetry.record_page_view("/dashboard")
"""

from .config import CoordinatorConfig, CosmosAuthMethod, MetricsSinkKind, ProfileBackend

# Exceptions
from .exceptions import (
    ConfigurationError,
    CoordinatorError,
    CredentialError,
    NotAuthenticatedError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileStoreError,
    ProfileSyncError,
    ProviderError,
    SessionError,
    StorageConnectionError,
    TelemetryError,
)

# Identity module
from .identity import (
    IdentityProvider,
    IdentityState,
    IdentityStateCoordinator,
    InMemoryIdentityProvider,
    PersistenceMode,
    Principal,
    ProviderKind,
    SessionPersistencePolicy,
)
from .profile import (
    InMemoryProfileStore,
    LocalProfileStore,
    Profile,
    ProfileStore,
    ProfileSynchronizer,
)
from .session import SessionService
from .telemetry import (
    AnalyticsEvent,
    JsonlMetricsSink,
    LoggingMetricsSink,
    MetricsSink,
    PageView,
    TelemetryAggregator,
    mask_email,
)

__all__ = [
    # Composition
    "SessionService",
    "CoordinatorConfig",
    "ProfileBackend",
    "MetricsSinkKind",
    "CosmosAuthMethod",
    # Identity
    "IdentityProvider",
    "InMemoryIdentityProvider",
    "IdentityState",
    "IdentityStateCoordinator",
    "PersistenceMode",
    "Principal",
    "ProviderKind",
    "SessionPersistencePolicy",
    # Profile
    "Profile",
    "ProfileStore",
    "InMemoryProfileStore",
    "LocalProfileStore",
    "ProfileSynchronizer",
    # Telemetry
    "AnalyticsEvent",
    "PageView",
    "TelemetryAggregator",
    "MetricsSink",
    "LoggingMetricsSink",
    "JsonlMetricsSink",
    "mask_email",
    # Exceptions
    "CoordinatorError",
    "CredentialError",
    "SessionError",
    "NotAuthenticatedError",
    "ProfileSyncError",
    "TelemetryError",
    "ProviderError",
    "ProfileStoreError",
    "ProfileNotFoundError",
    "ProfileExistsError",
    "StorageConnectionError",
    "ConfigurationError",
]

__version__ = "0.1.0"
