"""
Session persistence policy.

Chooses whether the next session survives browser restarts or is scoped to
the current tab. Providers bind the mode to the session at credential
exchange, so ``select`` must complete before the exchange starts. That
ordering is the caller's responsibility and is not checked here.
"""

import logging

from ..exceptions import ProviderError, SessionError
from .provider import IdentityProvider
from .types import PersistenceMode

logger = logging.getLogger(__name__)


class SessionPersistencePolicy:
    """Maps a "remember me" choice onto the provider's persistence mode."""

    def __init__(self, provider: IdentityProvider):
        self._provider = provider
        self.selected: PersistenceMode | None = None

    @staticmethod
    def mode_for(remember: bool) -> PersistenceMode:
        return PersistenceMode.LOCAL if remember else PersistenceMode.SESSION

    async def select(self, remember: bool) -> PersistenceMode:
        """Set provider persistence for the next credential exchange.

        Raises:
            SessionError: If the provider rejects the change
        """
        mode = self.mode_for(remember)
        try:
            await self._provider.set_persistence_mode(mode)
        except ProviderError as e:
            raise SessionError(f"Failed to set session persistence: {e.message}", e.code) from e
        self.selected = mode
        logger.debug("Session persistence set to %s", mode.value)
        return mode
