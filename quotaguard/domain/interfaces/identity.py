"""Interface for the identity provider.

Only used to namespace derived-result caches per signed-in identity.
"""

import abc
from typing import Optional


class IdentityProvider(abc.ABC):
    """Abstract Base Class answering "who is the current identity, if any"."""

    @abc.abstractmethod
    def current_identity(self) -> Optional[str]:
        """Returns the current identity id, or None when nobody is signed in."""
        pass
