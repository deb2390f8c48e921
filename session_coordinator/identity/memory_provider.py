"""
In-process identity provider.

Implements the IdentityProvider contract without a hosted backend, for
development, offline use and tests. Accounts live in memory, passwords are
stored as bcrypt hashes, and verification/reset codes are delivered
to an outbox instead of email.
"""

from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field

import bcrypt

from ..exceptions import ProviderError
from .provider import IdentityProvider, StateListener, Unsubscribe
from .types import PersistenceMode, Principal, ProviderKind

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
DEFAULT_BCRYPT_ROUNDS = 12

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


@dataclass
class FederatedIdentity:
    """The account a federated provider would return on sign-in."""

    email: str
    display_name: str | None = None
    photo_url: str | None = None


@dataclass
class OutboxMessage:
    """A verification or reset message that would have been emailed."""

    kind: str  # "verify_email" or "reset_password"
    email: str
    code: str


@dataclass
class _Account:
    uid: str
    email: str
    password_hash: bytes | None = None
    display_name: str | None = None
    photo_url: str | None = None
    email_verified: bool = False
    provider_ids: list[str] = field(default_factory=list)
    disabled: bool = False

    def snapshot(self) -> Principal:
        return Principal(
            id=self.uid,
            email=self.email,
            email_verified=self.email_verified,
            display_name=self.display_name,
            photo_url=self.photo_url,
            provider_ids=tuple(self.provider_ids),
        )


class InMemoryIdentityProvider(IdentityProvider):
    """Identity provider backed by in-process state.

    Listeners are awaited one after another, so notifications are applied in
    the order they are emitted.

    Failures can be injected per operation with ``inject_failure`` to exercise
    caller error handling.
    """

    def __init__(self, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.bcrypt_rounds = bcrypt_rounds
        self.persistence_mode = PersistenceMode.LOCAL
        self.session_persistence: PersistenceMode | None = None
        self.outbox: list[OutboxMessage] = []

        self._accounts: dict[str, _Account] = {}
        self._uid_by_email: dict[str, str] = {}
        self._federated: dict[ProviderKind, FederatedIdentity] = {}
        self._codes: dict[str, tuple[str, str]] = {}
        self._listeners: list[StateListener] = []
        self._current_uid: str | None = None
        self._failures: dict[str, str] = {}

    # =========================================================================
    # Test and development helpers
    # =========================================================================

    def register_federated_identity(
        self,
        kind: ProviderKind,
        email: str,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> None:
        """Configure the identity a federated sign-in or link will return."""
        if kind is ProviderKind.PASSWORD:
            raise ValueError("Password accounts are created with create_account")
        self._federated[kind] = FederatedIdentity(email, display_name, photo_url)

    def inject_failure(self, operation: str, code: str) -> None:
        """Make the next call to ``operation`` raise ProviderError(code)."""
        self._failures[operation] = code

    def disable_account(self, email: str) -> None:
        self._account_by_email(email).disabled = True

    async def revoke_session(self) -> None:
        """Simulate a provider-side de-authentication."""
        self._current_uid = None
        self.session_persistence = None
        await self._notify()

    def last_code(self, kind: str) -> str | None:
        """Most recent outbox code of the given kind."""
        for message in reversed(self.outbox):
            if message.kind == kind:
                return message.code
        return None

    @property
    def current_principal(self) -> Principal | None:
        if self._current_uid is None:
            return None
        return self._accounts[self._current_uid].snapshot()

    # =========================================================================
    # IdentityProvider
    # =========================================================================

    async def subscribe(self, listener: StateListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        await listener(self.current_principal)
        return unsubscribe

    async def set_persistence_mode(self, mode: PersistenceMode) -> None:
        self._check_failure("set_persistence_mode")
        self.persistence_mode = mode

    async def exchange_credentials(self, email: str, password: str) -> Principal:
        self._check_failure("exchange_credentials")
        uid = self._uid_by_email.get(email.strip().lower())
        account = self._accounts.get(uid) if uid else None
        if account is None or account.password_hash is None:
            raise ProviderError("auth/invalid-credential", "Invalid email or password")
        if not self._verify_password(account, password):
            raise ProviderError("auth/invalid-credential", "Invalid email or password")
        if account.disabled:
            raise ProviderError("auth/user-disabled", "This account has been disabled")
        return await self._sign_in(account)

    async def create_account(self, email: str, password: str) -> Principal:
        self._check_failure("create_account")
        email = self._validate_email(email)
        if email.lower() in self._uid_by_email:
            raise ProviderError("auth/email-already-in-use", "The email address is already in use")
        self._validate_password(password)

        account = _Account(uid=uuid.uuid4().hex, email=email, provider_ids=[ProviderKind.PASSWORD.value])
        self._set_password(account, password)
        self._add_account(account)
        logger.debug("Created password account %s", account.uid)
        return await self._sign_in(account)

    async def sign_in_with_provider(self, kind: ProviderKind) -> Principal:
        self._check_failure("sign_in_with_provider")
        identity = self._federated_identity(kind)
        uid = self._uid_by_email.get(identity.email.lower())
        if uid is not None:
            account = self._accounts[uid]
            if kind.value not in account.provider_ids:
                raise ProviderError(
                    "auth/account-exists-with-different-credential",
                    "An account already exists with the same email address",
                )
            if account.disabled:
                raise ProviderError("auth/user-disabled", "This account has been disabled")
        else:
            account = _Account(
                uid=uuid.uuid4().hex,
                email=identity.email,
                display_name=identity.display_name,
                photo_url=identity.photo_url,
                email_verified=True,
                provider_ids=[kind.value],
            )
            self._add_account(account)
            logger.debug("Created %s account %s", kind.value, account.uid)
        return await self._sign_in(account)

    async def end_session(self) -> None:
        self._check_failure("end_session")
        self._current_uid = None
        self.session_persistence = None
        await self._notify()

    async def send_reset(self, email: str) -> None:
        self._check_failure("send_reset")
        account = self._account_by_email(email)
        self._issue_code("reset_password", account)

    async def send_verification(self, principal_id: str) -> None:
        self._check_failure("send_verification")
        account = self._account(principal_id)
        self._issue_code("verify_email", account)

    async def apply_verification_code(self, code: str) -> None:
        self._check_failure("apply_verification_code")
        entry = self._codes.get(code)
        if entry is None or entry[0] != "verify_email":
            raise ProviderError("auth/invalid-action-code", "The action code is invalid or expired")
        del self._codes[code]
        self._account(entry[1]).email_verified = True

    async def confirm_password_reset(self, code: str, new_password: str) -> None:
        """Apply a reset code from the outbox."""
        entry = self._codes.get(code)
        if entry is None or entry[0] != "reset_password":
            raise ProviderError("auth/invalid-action-code", "The action code is invalid or expired")
        self._validate_password(new_password)
        del self._codes[code]
        self._set_password(self._account(entry[1]), new_password)

    async def link_provider(self, principal_id: str, kind: ProviderKind) -> Principal:
        self._check_failure("link_provider")
        account = self._account(principal_id)
        identity = self._federated_identity(kind)
        if kind.value in account.provider_ids:
            raise ProviderError("auth/provider-already-linked", f"{kind.value} is already linked")
        other = self._uid_by_email.get(identity.email.lower())
        if other is not None and other != account.uid:
            raise ProviderError(
                "auth/credential-already-in-use",
                "This credential is already associated with a different account",
            )
        account.provider_ids.append(kind.value)
        if account.display_name is None:
            account.display_name = identity.display_name
        if account.photo_url is None:
            account.photo_url = identity.photo_url
        return account.snapshot()

    async def unlink_provider(self, principal_id: str, provider_id: str) -> Principal:
        self._check_failure("unlink_provider")
        account = self._account(principal_id)
        if provider_id not in account.provider_ids:
            raise ProviderError("auth/no-such-provider", f"{provider_id} is not linked")
        account.provider_ids.remove(provider_id)
        if provider_id == ProviderKind.PASSWORD.value:
            account.password_hash = None
        return account.snapshot()

    async def update_profile(
        self,
        principal_id: str,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> Principal:
        self._check_failure("update_profile")
        account = self._account(principal_id)
        if display_name is not None:
            account.display_name = display_name
        if photo_url is not None:
            account.photo_url = photo_url
        return account.snapshot()

    async def update_email(self, principal_id: str, email: str) -> Principal:
        self._check_failure("update_email")
        account = self._account(principal_id)
        email = self._validate_email(email)
        existing = self._uid_by_email.get(email.lower())
        if existing is not None and existing != account.uid:
            raise ProviderError("auth/email-already-in-use", "The email address is already in use")
        del self._uid_by_email[account.email.lower()]
        account.email = email
        account.email_verified = False
        self._uid_by_email[email.lower()] = account.uid
        return account.snapshot()

    async def update_password(self, principal_id: str, password: str) -> None:
        self._check_failure("update_password")
        account = self._account(principal_id)
        self._validate_password(password)
        self._set_password(account, password)

    async def reload(self, principal_id: str) -> Principal:
        self._check_failure("reload")
        return self._account(principal_id).snapshot()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _sign_in(self, account: _Account) -> Principal:
        self._current_uid = account.uid
        # Persistence is bound to the session at exchange time
        self.session_persistence = self.persistence_mode
        await self._notify()
        return account.snapshot()

    async def _notify(self) -> None:
        snapshot = self.current_principal
        for listener in list(self._listeners):
            await listener(snapshot)

    def _check_failure(self, operation: str) -> None:
        code = self._failures.pop(operation, None)
        if code is not None:
            raise ProviderError(code, f"{operation} failed: {code}")

    def _add_account(self, account: _Account) -> None:
        self._accounts[account.uid] = account
        self._uid_by_email[account.email.lower()] = account.uid

    def _account(self, principal_id: str) -> _Account:
        account = self._accounts.get(principal_id)
        if account is None:
            raise ProviderError("auth/user-not-found", "No account for this principal")
        return account

    def _account_by_email(self, email: str) -> _Account:
        uid = self._uid_by_email.get(email.strip().lower())
        if uid is None:
            raise ProviderError("auth/user-not-found", "No account for this email address")
        return self._accounts[uid]

    def _federated_identity(self, kind: ProviderKind) -> FederatedIdentity:
        identity = self._federated.get(kind)
        if identity is None:
            raise ProviderError("auth/operation-not-allowed", f"{kind.value} sign-in is not configured")
        return identity

    def _issue_code(self, kind: str, account: _Account) -> str:
        code = secrets.token_urlsafe(16)
        self._codes[code] = (kind, account.uid)
        self.outbox.append(OutboxMessage(kind=kind, email=account.email, code=code))
        return code

    def _set_password(self, account: _Account, password: str) -> None:
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        account.password_hash = bcrypt.hashpw(password.encode("utf-8"), salt)

    @staticmethod
    def _verify_password(account: _Account, password: str) -> bool:
        if account.password_hash is None:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), account.password_hash)

    @staticmethod
    def _validate_email(email: str) -> str:
        email = email.strip()
        if not EMAIL_PATTERN.match(email):
            raise ProviderError("auth/invalid-email", "The email address is badly formatted")
        return email

    @staticmethod
    def _validate_password(password: str) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ProviderError(
                "auth/weak-password",
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
            )
