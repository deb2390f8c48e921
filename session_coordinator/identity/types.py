"""
Identity types and data classes.

Defines the principal snapshot handed out by identity providers and the
enums describing provider kinds, session persistence and coordinator state.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

DEFAULT_PROVIDER_ID = "email"


class ProviderKind(Enum):
    """Sign-in methods a principal can be linked to."""

    PASSWORD = "password"
    GOOGLE = "google.com"
    GITHUB = "github.com"


class PersistenceMode(Enum):
    """Where the active session is durably held."""

    LOCAL = "local"  # Survives browser restarts ("remember me")
    SESSION = "session"  # Tab scoped


class IdentityState(Enum):
    """Coordinator state tags."""

    UNRESOLVED = "unresolved"  # Waiting for the first provider notification
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Principal:
    """Identity-provider-issued record for an authenticated actor.

    Snapshots are immutable; the provider hands out a fresh one on every
    state change and the coordinator replaces its reference wholesale.
    """

    id: str
    email: str | None = None
    email_verified: bool = False
    display_name: str | None = None
    photo_url: str | None = None
    provider_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def primary_provider(self) -> str:
        """The provider the principal first signed in with."""
        return self.provider_ids[0] if self.provider_ids else DEFAULT_PROVIDER_ID

    def is_linked(self, provider_id: str) -> bool:
        return provider_id in self.provider_ids

    def evolve(self, **changes: Any) -> "Principal":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "email_verified": self.email_verified,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "provider_ids": list(self.provider_ids),
        }
