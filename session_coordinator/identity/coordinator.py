"""
Identity state coordinator.

Owns the current principal, the cached profile and the loading flag, and
orchestrates signup, login, logout and account maintenance against the
identity provider.

States:
    UNRESOLVED     waiting for the first provider notification (loading)
    ANONYMOUS      no active principal
    AUTHENTICATED  principal present; refreshes and links keep the tag

Provider notifications are applied in the order they arrive. Overlapping
login/signup calls are neither rejected nor queued; issuing them
concurrently is up to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ..exceptions import (
    CredentialError,
    NotAuthenticatedError,
    ProfileSyncError,
    ProviderError,
    SessionError,
)
from ..logging_utils import PrincipalLoggerAdapter
from ..profile.synchronizer import ProfileSynchronizer, log_absorbed
from ..profile.types import Profile
from .persistence import SessionPersistencePolicy
from .provider import IdentityProvider, Unsubscribe
from .types import IdentityState, Principal, ProviderKind

logger = logging.getLogger(__name__)


class IdentityStateCoordinator:
    """Tracks identity state and exposes it consistently to consumers.

    Usage:
        coordinator = IdentityStateCoordinator(provider, synchronizer, persistence)
        await coordinator.start()
        principal = await coordinator.login("alice@example.com", "secret", remember=True)
        ...
        await coordinator.close()
    """

    def __init__(
        self,
        provider: IdentityProvider,
        synchronizer: ProfileSynchronizer,
        persistence: SessionPersistencePolicy | None = None,
    ):
        self._provider = provider
        self._synchronizer = synchronizer
        self._persistence = persistence or SessionPersistencePolicy(provider)
        self._principal: Principal | None = None
        self._profile: Profile | None = None
        self._state = IdentityState.UNRESOLVED
        self._pending = 0
        self._unsubscribe: Unsubscribe | None = None
        self._log = PrincipalLoggerAdapter(logger, lambda: self._principal.id if self._principal else None)

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def current_principal(self) -> Principal | None:
        return self._principal

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def loading(self) -> bool:
        """True until the first notification and while an identity change is in flight."""
        return self._state is IdentityState.UNRESOLVED or self._pending > 0

    @property
    def is_authenticated(self) -> bool:
        return self._state is IdentityState.AUTHENTICATED

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Subscribe to provider notifications. Idempotent."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = await self._provider.subscribe(self._on_identity_changed)

    async def close(self) -> None:
        """Dispose of the provider subscription."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_identity_changed(self, principal: Principal | None) -> None:
        previous = self._state
        self._principal = principal
        if principal is None:
            self._state = IdentityState.ANONYMOUS
            self._profile = None
        else:
            self._state = IdentityState.AUTHENTICATED
            if self._profile is not None and self._profile.id != principal.id:
                self._profile = None
            # Operations in flight synchronize the profile themselves
            if self._pending == 0:
                await self.refresh_profile()
        if previous is not self._state:
            self._log.info("Identity state %s -> %s", previous.value, self._state.value)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def signup(self, email: str, password: str, display_name: str | None = None) -> Principal:
        """Create an account, send a verification email and create its profile.

        Raises:
            CredentialError: Email in use, weak password, invalid email, ...
        """
        async with self._busy():
            try:
                principal = await self._provider.create_account(email, password)
                if display_name:
                    principal = await self._provider.update_profile(principal.id, display_name=display_name)
                await self._provider.send_verification(principal.id)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "signup") from e

            self._set_authenticated(principal)
            await self._sync_profile(principal)
            self._log.info("Signed up new account")
            return principal

    async def login(self, email: str, password: str, remember: bool = False) -> Principal:
        """Sign in with email and password.

        Persistence is selected before the credential exchange because the
        provider binds it to the session at exchange time.

        Raises:
            CredentialError: Invalid credentials, disabled account, network failure
            SessionError: The persistence mode could not be applied
        """
        async with self._busy():
            await self._persistence.select(remember)
            try:
                principal = await self._provider.exchange_credentials(email, password)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "login") from e

            self._set_authenticated(principal)
            await self._sync_profile(principal)
            self._log.info("Logged in (remember=%s)", remember)
            return principal

    async def sign_in_with_provider(self, kind: ProviderKind) -> Principal:
        """Sign in through a federated provider (Google, GitHub).

        Raises:
            CredentialError: The provider rejected the sign-in
        """
        async with self._busy():
            try:
                principal = await self._provider.sign_in_with_provider(kind)
            except ProviderError as e:
                raise CredentialError.from_provider(e, f"sign_in:{kind.value}") from e

            self._set_authenticated(principal)
            await self._sync_profile(principal)
            self._log.info("Signed in with %s", kind.value)
            return principal

    async def logout(self) -> None:
        """End the session and clear the cached profile.

        Raises:
            SessionError: The provider failed to end the session
        """
        async with self._busy():
            try:
                await self._provider.end_session()
            except ProviderError as e:
                raise SessionError(e.message or "Failed to logout", e.code) from e
            self._log.info("Logged out")
            self._principal = None
            self._profile = None
            self._state = IdentityState.ANONYMOUS

    async def reset_password(self, email: str) -> None:
        """Send a password reset message. Does not need an active principal."""
        try:
            await self._provider.send_reset(email)
        except ProviderError as e:
            raise CredentialError.from_provider(e, "reset_password") from e

    # =========================================================================
    # Principal-scoped operations
    # =========================================================================

    async def send_verification_email(self) -> None:
        principal = self._require_principal("send_verification_email")
        try:
            await self._provider.send_verification(principal.id)
        except ProviderError as e:
            raise CredentialError.from_provider(e, "send_verification_email") from e

    async def verify_email(self, code: str) -> None:
        """Apply a verification code, then reload the principal and profile."""
        principal = self._require_principal("verify_email")
        async with self._busy():
            try:
                await self._provider.apply_verification_code(code)
                reloaded = await self._provider.reload(principal.id)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "verify_email") from e
            self._principal = reloaded
            await self.refresh_profile()

    async def link_provider(self, kind: ProviderKind) -> Principal:
        """Link a federated provider to the active principal."""
        principal = self._require_principal("link_provider")
        async with self._busy():
            try:
                linked = await self._provider.link_provider(principal.id, kind)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "link_provider") from e
            self._set_authenticated(linked)
            await self.refresh_profile()
            self._log.info("Linked %s", kind.value)
            return linked

    async def unlink_provider(self, provider_id: str) -> None:
        """Remove a linked provider from the active principal."""
        principal = self._require_principal("unlink_provider")
        async with self._busy():
            try:
                updated = await self._provider.unlink_provider(principal.id, provider_id)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "unlink_provider") from e
            self._set_authenticated(updated)
            await self.refresh_profile()
            self._log.info("Unlinked %s", provider_id)

    async def update_email(self, email: str) -> None:
        principal = self._require_principal("update_email")
        async with self._busy():
            try:
                self._principal = await self._provider.update_email(principal.id, email)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "update_email") from e
            await self.refresh_profile()

    async def update_password(self, password: str) -> None:
        principal = self._require_principal("update_password")
        try:
            await self._provider.update_password(principal.id, password)
        except ProviderError as e:
            raise CredentialError.from_provider(e, "update_password") from e

    async def update_display_name(self, name: str) -> None:
        principal = self._require_principal("update_display_name")
        async with self._busy():
            try:
                self._principal = await self._provider.update_profile(principal.id, display_name=name)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "update_display_name") from e
            await self.refresh_profile()

    async def update_photo_url(self, url: str) -> None:
        principal = self._require_principal("update_photo_url")
        async with self._busy():
            try:
                self._principal = await self._provider.update_profile(principal.id, photo_url=url)
            except ProviderError as e:
                raise CredentialError.from_provider(e, "update_photo_url") from e
            await self.refresh_profile()

    async def refresh_profile(self) -> None:
        """Re-read the profile document and replace the local cache.

        Clears the cache when there is no principal or no stored document.
        Store failures are logged and leave the cache unchanged.
        """
        principal = self._principal
        if principal is None:
            self._profile = None
            return
        try:
            profile = await self._synchronizer.fetch(principal.id)
        except ProfileSyncError as e:
            log_absorbed(e)
            return
        self._profile = profile

    # =========================================================================
    # Internals
    # =========================================================================

    @asynccontextmanager
    async def _busy(self) -> AsyncIterator[None]:
        self._pending += 1
        try:
            yield
        finally:
            self._pending -= 1

    def _require_principal(self, operation: str) -> Principal:
        if self._principal is None:
            raise NotAuthenticatedError(operation)
        return self._principal

    def _set_authenticated(self, principal: Principal) -> None:
        self._principal = principal
        self._state = IdentityState.AUTHENTICATED

    async def _sync_profile(self, principal: Principal) -> None:
        profile = await self._synchronizer.sync_on_authentication(principal)
        if profile is not None:
            self._profile = profile
