"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like cache keys, identity
scopes and state fingerprints, ensuring consistency and type safety.
"""

from enum import Enum
from typing import NewType

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
PromptText = NewType("PromptText", str)        # Prompt sent to the text-generation API
ModelName = NewType("ModelName", str)          # Provider model identifier
GeneratedText = NewType("GeneratedText", str)  # Raw text returned by the API

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Unique key for a governor cache entry
StorageKey = NewType("StorageKey", str)        # Key inside the persistent key-value store

# === Identity & Fingerprint Context ===
ScopeId = NewType("ScopeId", str)              # Identity/session namespace for derived results
StateHash = NewType("StateHash", str)          # Deterministic fingerprint of result-affecting inputs

# Scope used when no identity is signed in
ANONYMOUS_SCOPE = ScopeId("anonymous")


class Priority(str, Enum):
    """Admission tier of a queued request."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class ErrorKind(str, Enum):
    """Classification of a failed API call, surfaced by the network collaborator."""

    QUOTA_EXHAUSTED = "quota_exhausted"  # Arms cooldown, retryable
    TRANSIENT = "transient"              # Retryable, no cooldown
