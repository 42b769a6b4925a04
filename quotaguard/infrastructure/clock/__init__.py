"""Clock Implementations.

Provides the production wall clock backed by the asyncio event loop.
"""
