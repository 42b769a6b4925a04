"""Domain Interfaces (Ports).

Abstract base classes for the collaborators the governor depends on: clock,
key-value store, identity provider, text-generation model and user interface.
"""
