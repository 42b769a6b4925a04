"""Infrastructure Layer: concrete adapters behind the domain interfaces.

Holds the request governor and its resilience parts, the cache store and
cache manager, key-value stores, provider clients, configuration, logging
and the rich console display.
"""
