"""
Profile mirroring.

Profile documents mirror principals into a keyed document store and
track login bookkeeping. The Cosmos DB store is imported from
``session_coordinator.profile.cosmos`` when needed.
"""

from .local import LocalProfileStore
from .memory import InMemoryProfileStore
from .store import ProfileStore
from .synchronizer import ProfileSynchronizer
from .types import SERVER_TIMESTAMP, Profile, ServerTimestamp

__all__ = [
    "Profile",
    "ServerTimestamp",
    "SERVER_TIMESTAMP",
    "ProfileStore",
    "InMemoryProfileStore",
    "LocalProfileStore",
    "ProfileSynchronizer",
]
