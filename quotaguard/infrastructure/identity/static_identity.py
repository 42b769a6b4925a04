"""Identity provider holding the signed-in identity in memory.

Authentication itself happens elsewhere; the host application calls
``sign_in``/``sign_out`` and the dedup layer only reads the current id.
"""

import logging
from typing import Optional

from quotaguard.domain.interfaces.identity import IdentityProvider

logger = logging.getLogger(__name__)


class StaticIdentityProvider(IdentityProvider):
    """IdentityProvider backed by a settable attribute."""

    def __init__(self, identity: Optional[str] = None):
        self._identity = identity or None

    def current_identity(self) -> Optional[str]:
        return self._identity

    def sign_in(self, identity: str) -> None:
        if not identity or not identity.strip():
            raise ValueError("Identity must be a non-empty string.")
        logger.info(f"Identity switched to: {identity}")
        self._identity = identity

    def sign_out(self) -> None:
        logger.info("Identity cleared.")
        self._identity = None
