"""
Profile document types.

The Profile is this system's mirror of a principal, enriched with login
bookkeeping. Field names in the stored document match the dataclass.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


class ServerTimestamp:
    """Sentinel replaced by the store's own clock when a document is written."""

    _instance: "ServerTimestamp | None" = None

    def __new__(cls) -> "ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Profile:
    """Mirrored, enriched record of a principal.

    created_at is immutable once set, last_login_at never decreases, and
    login_count starts at 1 and grows by one per authentication.
    """

    id: str
    email: str
    email_verified: bool = False
    provider: str = "email"
    display_name: str | None = None
    photo_url: str | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None
    login_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "email_verified": self.email_verified,
            "provider": self.provider,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "login_count": self.login_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Deserialize from a stored document.

        Accepts datetimes either as ISO strings or as datetime objects.
        """
        return cls(
            id=data["id"],
            email=data.get("email") or "",
            email_verified=bool(data.get("email_verified", False)),
            provider=data.get("provider", "email"),
            display_name=data.get("display_name"),
            photo_url=data.get("photo_url"),
            created_at=_parse_datetime(data.get("created_at")),
            last_login_at=_parse_datetime(data.get("last_login_at")),
            login_count=int(data.get("login_count") or 0),
        )
