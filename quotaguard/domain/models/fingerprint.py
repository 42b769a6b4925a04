"""State fingerprint used to validate contextual cache entries.

The fingerprint is cheap and deterministic: it changes whenever a
result-affecting input changes, while tolerating small money drift.
"""

import hashlib
import math
from dataclasses import dataclass
from typing import Optional

from .common import ANONYMOUS_SCOPE, ScopeId, StateHash

# Money is bucketed to the nearest 100 units
MONEY_BUCKET = 100
FINGERPRINT_LENGTH = 16


def round_money(amount: float, bucket: int = MONEY_BUCKET) -> int:
    """Rounds an amount half-up to the nearest bucket index."""
    return math.floor(amount / bucket + 0.5)


@dataclass(frozen=True)
class StateSnapshot:
    """Coarse snapshot of the inputs a derived result depends on."""

    scope: ScopeId = ANONYMOUS_SCOPE
    balance: float = 0.0
    transaction_count: int = 0
    latest_transaction: Optional[str] = None  # id or timestamp of the newest transaction
    strategy_id: Optional[str] = None

    def fingerprint(self) -> StateHash:
        parts = [
            str(self.scope),
            str(round_money(self.balance)),
            str(self.transaction_count),
            self.latest_transaction or "-",
            self.strategy_id or "-",
        ]
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
        return StateHash(digest[:FINGERPRINT_LENGTH])
