"""Monitoring Implementations.

Logging setup and the periodic governor statistics subscription.
Bounded Context: Observability
"""
