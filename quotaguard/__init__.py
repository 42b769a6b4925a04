"""quotaguard: client-side request governor for quota-constrained text-generation APIs."""

__version__ = "0.1.0"
