"""
Abstract profile store interface.

A keyed document store (key = principal id) with get, create and partial
update. Timestamps written with the ``server_timestamp()`` sentinel are
resolved by the store when the write is applied, never from the caller's
clock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from .types import SERVER_TIMESTAMP, ServerTimestamp


class ProfileStore(ABC):
    """Abstract interface for profile document storage.

    All store implementations (memory, local, cosmos) must implement
    this interface.
    """

    #: Whether ``increment`` is implemented as a single store-side operation.
    supports_atomic_increment: bool = False

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Read a document.

        Returns:
            The document, or None if it does not exist

        Raises:
            ProfileStoreError: If the read fails
        """
        ...

    @abstractmethod
    async def create(self, key: str, document: dict[str, Any]) -> None:
        """Create a document.

        Raises:
            ProfileExistsError: If a document already exists for the key
            ProfileStoreError: If the write fails
        """
        ...

    @abstractmethod
    async def update(self, key: str, fields: dict[str, Any]) -> None:
        """Apply a partial update to an existing document.

        Raises:
            ProfileNotFoundError: If no document exists for the key
            ProfileStoreError: If the write fails
        """
        ...

    async def increment(
        self,
        key: str,
        field: str,
        amount: int = 1,
        fields: dict[str, Any] | None = None,
    ) -> None:
        """Atomically add ``amount`` to ``field``, applying ``fields`` in the same write.

        Only available when ``supports_atomic_increment`` is True.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support atomic increments")

    def server_timestamp(self) -> ServerTimestamp:
        """Sentinel resolved to the store's clock at write time."""
        return SERVER_TIMESTAMP

    async def close(self) -> None:
        """Release any resources held by the store."""

    def now(self) -> datetime:
        """The store's clock, used to resolve server timestamps."""
        return datetime.now(UTC)

    def resolve_server_values(self, document: dict[str, Any]) -> dict[str, Any]:
        """Replace server timestamp sentinels with a single write time.

        Every sentinel in one write resolves to the same instant.
        """
        now = self.now()
        return {
            key: now if isinstance(value, ServerTimestamp) else value
            for key, value in document.items()
        }
