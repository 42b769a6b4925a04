"""Identity Provider Implementations."""
