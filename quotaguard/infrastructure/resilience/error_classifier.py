"""Classification of failed calls into quota exhaustion or transient errors.

Typed ApiCallError instances carry their own ``kind``. Anything else is
matched against vendor-specific markers, which are configuration rather
than fixed logic because providers change their error texts.
"""

import logging
from typing import Iterable, Optional, Sequence, Tuple

from quotaguard.domain.models.common import ErrorKind
from quotaguard.domain.models.errors import ApiCallError

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_MARKERS: Tuple[str, ...] = ("429", "RESOURCE_EXHAUSTED", "quota")
DEFAULT_QUOTA_STATUS_CODES: Tuple[int, ...] = (429,)


class ErrorClassifier:
    """Maps exceptions to an ErrorKind using configurable markers."""

    def __init__(
        self,
        quota_markers: Iterable[str] = DEFAULT_QUOTA_MARKERS,
        quota_status_codes: Iterable[int] = DEFAULT_QUOTA_STATUS_CODES,
    ):
        self.quota_markers: Sequence[str] = tuple(m for m in quota_markers if m)
        self.quota_status_codes = frozenset(quota_status_codes)

    def classify(self, error: BaseException) -> ErrorKind:
        """Returns the kind of ``error``; typed errors win over marker matching."""
        if isinstance(error, ApiCallError):
            return error.kind
        if _status_code(error) in self.quota_status_codes:
            return ErrorKind.QUOTA_EXHAUSTED
        message = str(error)
        if any(marker in message for marker in self.quota_markers):
            return ErrorKind.QUOTA_EXHAUSTED
        return ErrorKind.TRANSIENT

    def to_api_error(self, error: BaseException, provider: Optional[str] = None) -> ApiCallError:
        """Wraps an arbitrary exception into a typed ApiCallError."""
        if isinstance(error, ApiCallError):
            return error
        kind = self.classify(error)
        return ApiCallError(
            f"{type(error).__name__}: {error}",
            kind=kind,
            status_code=_status_code(error),
            provider=provider,
        )


def _status_code(error: BaseException) -> Optional[int]:
    # SDK errors expose ``status_code``; some HTTP clients use ``status``
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None
