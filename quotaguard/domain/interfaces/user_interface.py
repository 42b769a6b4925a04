"""Interface for interacting with the user (output only).

Defines the contract for displaying generated text, information, errors,
warnings and governor statistics, allowing different UI implementations
(e.g., console, GUI).
"""

import abc
from typing import Any

from ..models.limiter import LimiterStats


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user.

        Args:
            output: The text to display.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_stats(self, stats: LimiterStats, **kwargs: Any) -> None:
        """Displays a snapshot of the governor statistics.

        Args:
            stats: The statistics snapshot to render.
            **kwargs: Additional display options.
        """
        pass

    def display_cooldown_banner(self, remaining_seconds: int) -> None:
        """Tells the user the API is cooling down and cached data is preferred.

        Args:
            remaining_seconds: Seconds until new requests are admitted again.
        """
        pass
