"""
Profile reconciliation on authentication.

Implements get-or-create-and-increment against a ProfileStore. Failures are
absorbed: the authenticated session is authoritative even when the mirrored
profile lags behind or misses an update.
"""

from __future__ import annotations

import logging
from typing import Any

from ..exceptions import ProfileExistsError, ProfileSyncError
from ..identity.types import Principal
from .store import ProfileStore
from .types import Profile

logger = logging.getLogger(__name__)


def log_absorbed(error: ProfileSyncError) -> None:
    """Log a profile sync failure that is not surfaced to the caller."""
    logger.warning(
        "%s (absorbed)",
        error.message,
        exc_info=error.cause,
        extra={"error_type": type(error).__name__, **error.details},
    )


class ProfileSynchronizer:
    """Mirrors principals into Profile documents.

    The login counter is a read-modify-write unless ``atomic_increment`` is
    set and the store supports server-side increments. Two concurrent logins
    for the same principal can under-count under read-modify-write.
    """

    def __init__(self, store: ProfileStore, atomic_increment: bool = False):
        self.store = store
        self.atomic_increment = atomic_increment and store.supports_atomic_increment

    async def sync_on_authentication(self, principal: Principal) -> Profile | None:
        """Create or update the principal's profile and return the stored result.

        Never raises. On failure one ProfileSyncError is logged and None is
        returned.
        """
        stage = "read"
        try:
            existing = await self.store.get(principal.id)
            if existing is None:
                stage = "create"
                try:
                    await self.store.create(principal.id, self._new_document(principal))
                except ProfileExistsError:
                    # Created concurrently since our read
                    stage = "update"
                    await self._record_login(principal.id, await self.store.get(principal.id))
            else:
                stage = "update"
                await self._record_login(principal.id, existing)

            stage = "read"
            document = await self.store.get(principal.id)
            return Profile.from_dict(document) if document is not None else None
        except Exception as e:
            log_absorbed(ProfileSyncError(principal.id, stage, e))
            return None

    async def fetch(self, principal_id: str) -> Profile | None:
        """Read the current profile document.

        Raises:
            ProfileSyncError: If the store read fails
        """
        try:
            document = await self.store.get(principal_id)
        except Exception as e:
            raise ProfileSyncError(principal_id, "read", e) from e
        return Profile.from_dict(document) if document is not None else None

    async def _record_login(self, key: str, existing: dict[str, Any] | None) -> None:
        timestamp = {"last_login_at": self.store.server_timestamp()}
        if self.atomic_increment:
            await self.store.increment(key, "login_count", 1, timestamp)
            return
        current = (existing or {}).get("login_count") or 0
        await self.store.update(key, {**timestamp, "login_count": current + 1})

    def _new_document(self, principal: Principal) -> dict[str, Any]:
        now = self.store.server_timestamp()
        return {
            "id": principal.id,
            "email": principal.email or "",
            "display_name": principal.display_name,
            "photo_url": principal.photo_url,
            "email_verified": principal.email_verified,
            "provider": principal.primary_provider,
            "created_at": now,
            "last_login_at": now,
            "login_count": 1,
        }
