"""
Identity management for the session coordinator.

Provides the identity provider contract, an in-process provider,
the session persistence policy and the identity state coordinator.
"""

from .coordinator import IdentityStateCoordinator
from .memory_provider import FederatedIdentity, InMemoryIdentityProvider, OutboxMessage
from .persistence import SessionPersistencePolicy
from .provider import IdentityProvider, StateListener, Unsubscribe
from .types import IdentityState, PersistenceMode, Principal, ProviderKind

__all__ = [
    # Types
    "IdentityState",
    "PersistenceMode",
    "Principal",
    "ProviderKind",
    # Providers
    "IdentityProvider",
    "InMemoryIdentityProvider",
    "FederatedIdentity",
    "OutboxMessage",
    "StateListener",
    "Unsubscribe",
    # Coordination
    "SessionPersistencePolicy",
    "IdentityStateCoordinator",
]
