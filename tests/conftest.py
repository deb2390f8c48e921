"""
Shared test configuration and fixtures.

Provides fast in-memory collaborators, a controllable clock for telemetry
and a profile store that fails every call.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from session_coordinator.exceptions import ProfileStoreError
from session_coordinator.identity import IdentityStateCoordinator, InMemoryIdentityProvider
from session_coordinator.profile import InMemoryProfileStore, ProfileStore, ProfileSynchronizer
from session_coordinator.telemetry import TelemetryAggregator


class FakeClock:
    """Clock returning seconds, advanced explicitly in milliseconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000


class SteppingDatetimeClock:
    """Datetime clock that moves forward one second per reading."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FailingProfileStore(ProfileStore):
    """Profile store whose every operation fails."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get(self, key: str) -> dict[str, Any] | None:
        self.calls.append("get")
        raise ProfileStoreError("get", key, cause=RuntimeError("store unavailable"))

    async def create(self, key: str, document: dict[str, Any]) -> None:
        self.calls.append("create")
        raise ProfileStoreError("create", key, cause=RuntimeError("store unavailable"))

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        self.calls.append("update")
        raise ProfileStoreError("update", key, cause=RuntimeError("store unavailable"))


def sync_errors(records: list[logging.LogRecord]) -> list[logging.LogRecord]:
    """Log records for absorbed profile sync failures."""
    return [r for r in records if getattr(r, "error_type", None) == "ProfileSyncError"]


@pytest.fixture
def provider() -> InMemoryIdentityProvider:
    """Identity provider with cheap password hashing."""
    return InMemoryIdentityProvider(bcrypt_rounds=4)


@pytest.fixture
def datetime_clock() -> SteppingDatetimeClock:
    return SteppingDatetimeClock()


@pytest.fixture
def store(datetime_clock: SteppingDatetimeClock) -> InMemoryProfileStore:
    return InMemoryProfileStore(clock=datetime_clock)


@pytest.fixture
def synchronizer(store: InMemoryProfileStore) -> ProfileSynchronizer:
    return ProfileSynchronizer(store)


@pytest.fixture
async def coordinator(
    provider: InMemoryIdentityProvider, synchronizer: ProfileSynchronizer
) -> AsyncIterator[IdentityStateCoordinator]:
    """Started coordinator over the in-memory provider and store."""
    coordinator = IdentityStateCoordinator(provider, synchronizer)
    await coordinator.start()
    yield coordinator
    await coordinator.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def aggregator(clock: FakeClock) -> TelemetryAggregator:
    return TelemetryAggregator(clock=clock)
