"""Rich console implementation of the UserInterface.

Renders generated text, messages, the governor statistics table and the
cooldown banner.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quotaguard.domain.interfaces.user_interface import UserInterface
from quotaguard.domain.models.limiter import LimiterStats

logger = logging.getLogger(__name__)

# Usage thresholds (percent of the per-minute ceiling) for the usage colour
USAGE_WARNING = 70
USAGE_CRITICAL = 90


def usage_style(usage_percent: float) -> str:
    if usage_percent >= USAGE_CRITICAL:
        return "bold red"
    if usage_percent >= USAGE_WARNING:
        return "yellow"
    return "green"


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the display.

        Args:
            console: Console to print to. A default stdout Console if None.
        """
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays generated text, rendered as Markdown in a panel.

        Args:
            output: The text to display.
            **kwargs: ``title`` (default "AI") and ``subtitle`` for the panel.
        """
        title = kwargs.get("title", "AI")
        timestamp = datetime.now().strftime("%H:%M:%S")
        header = f"[bold white]{title}[/bold white] [dim]·[/dim] [dim white]{timestamp}[/dim white]"
        panel = Panel(
            Markdown(str(output)),
            title=header,
            title_align="left",
            subtitle=kwargs.get("subtitle"),
            border_style="blue",
            box=ROUNDED,
            padding=(0, 1),
        )
        self.console.print(panel)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1),
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.debug(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1),
        )
        self.console.print(panel)

    def build_stats_table(self, stats: LimiterStats) -> Table:
        """Builds the rich table used by ``display_stats``."""
        table = Table(title="API Usage", show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        usage = stats.usage_percent
        table.add_row(
            "Requests (last minute)",
            f"[{usage_style(usage)}]{stats.requests_in_last_minute}/{stats.max_requests_per_minute} ({usage:.0f}%)[/]",
        )
        table.add_row("Queued requests", str(stats.queue_length))
        table.add_row("Cached responses", str(stats.cache_size))
        if stats.is_in_cooldown:
            table.add_row("Status", f"[bold red]Cooling down ({stats.cooldown_remaining_ms / 1000:.0f}s left)[/bold red]")
        else:
            table.add_row("Status", "[green]OK[/green]")
        return table

    def display_stats(self, stats: LimiterStats, **kwargs: Any) -> None:
        """Displays the governor statistics table, plus the cooldown banner if active."""
        self.console.print(self.build_stats_table(stats))
        if stats.is_in_cooldown:
            self.display_cooldown_banner(int(round(stats.cooldown_remaining_ms / 1000)))

    def display_cooldown_banner(self, remaining_seconds: int) -> None:
        panel = Panel(
            Text(
                f"The API quota was exceeded repeatedly. New requests resume in {remaining_seconds}s; "
                "cached results are used where available.",
                style="white",
            ),
            title="[bold red]Cooling down[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        )
        self.console.print(panel)
