"""
Identity provider abstract interface.

Defines the contract the coordinator consumes from the hosted identity
platform. Every call is asynchronous and reports failures by raising
ProviderError with a provider-specific code.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .types import PersistenceMode, Principal, ProviderKind

StateListener = Callable[[Principal | None], Awaitable[None]]
Unsubscribe = Callable[[], None]


class IdentityProvider(ABC):
    """Abstract identity provider.

    The provider is responsible for:
    - Credential exchange and account creation
    - Federated sign-in and provider linking
    - Verification and password reset messages
    - Binding the persistence mode to the session at exchange time
    - Notifying subscribers of identity state changes, in emission order
    """

    @abstractmethod
    async def subscribe(self, listener: StateListener) -> Unsubscribe:
        """Register a listener for identity state changes.

        The listener receives the current principal (or None) once on
        registration and again after every change.

        Returns:
            Callable that removes the listener
        """
        ...

    @abstractmethod
    async def set_persistence_mode(self, mode: PersistenceMode) -> None:
        """Choose persistence for the next credential exchange.

        Has no effect on a session that already exists.
        """
        ...

    @abstractmethod
    async def exchange_credentials(self, email: str, password: str) -> Principal:
        """Sign in with email and password.

        Raises:
            ProviderError: invalid credential, disabled account, network failure
        """
        ...

    @abstractmethod
    async def create_account(self, email: str, password: str) -> Principal:
        """Create an email/password account and sign it in.

        Raises:
            ProviderError: email already in use, weak password, invalid email
        """
        ...

    @abstractmethod
    async def sign_in_with_provider(self, kind: ProviderKind) -> Principal:
        """Sign in through a federated provider."""
        ...

    @abstractmethod
    async def end_session(self) -> None:
        """Sign out the current principal."""
        ...

    @abstractmethod
    async def send_reset(self, email: str) -> None:
        """Send a password reset message."""
        ...

    @abstractmethod
    async def send_verification(self, principal_id: str) -> None:
        """Send an email verification message to the principal."""
        ...

    @abstractmethod
    async def apply_verification_code(self, code: str) -> None:
        """Apply an email verification action code."""
        ...

    @abstractmethod
    async def link_provider(self, principal_id: str, kind: ProviderKind) -> Principal:
        """Link a federated provider to the principal."""
        ...

    @abstractmethod
    async def unlink_provider(self, principal_id: str, provider_id: str) -> Principal:
        """Remove a linked provider from the principal."""
        ...

    @abstractmethod
    async def update_profile(
        self,
        principal_id: str,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> Principal:
        """Update provider-held display name and/or photo."""
        ...

    @abstractmethod
    async def update_email(self, principal_id: str, email: str) -> Principal:
        """Change the principal's email address."""
        ...

    @abstractmethod
    async def update_password(self, principal_id: str, password: str) -> None:
        """Change the principal's password."""
        ...

    @abstractmethod
    async def reload(self, principal_id: str) -> Principal:
        """Fetch a fresh snapshot of the principal."""
        ...
