"""
In-memory profile store.

Holds documents in a dict. Useful for development and tests; nothing
survives the process.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..exceptions import ProfileExistsError, ProfileNotFoundError
from .store import ProfileStore


class InMemoryProfileStore(ProfileStore):
    """Profile store backed by a dict.

    There is no await between the read and the write of ``increment``, so
    it is atomic under asyncio.
    """

    supports_atomic_increment = True

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._documents: dict[str, dict[str, Any]] = {}
        self._clock = clock

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return super().now()

    async def get(self, key: str) -> dict[str, Any] | None:
        document = self._documents.get(key)
        return dict(document) if document is not None else None

    async def create(self, key: str, document: dict[str, Any]) -> None:
        if key in self._documents:
            raise ProfileExistsError(key)
        self._documents[key] = self.resolve_server_values(document)

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        if key not in self._documents:
            raise ProfileNotFoundError(key)
        self._documents[key].update(self.resolve_server_values(fields))

    async def increment(
        self,
        key: str,
        field: str,
        amount: int = 1,
        fields: dict[str, Any] | None = None,
    ) -> None:
        document = self._documents.get(key)
        if document is None:
            raise ProfileNotFoundError(key, operation="increment")
        document.update(self.resolve_server_values(fields or {}))
        document[field] = (document.get(field) or 0) + amount

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, key: object) -> bool:
        return key in self._documents
