"""
Rich formatter for the deadline list.

Renders the summary counters and the urgency-tagged deadline table for
the command line.
"""

from datetime import datetime
from typing import List, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from dataponto.deadlines.aggregator import DeadlineItem, DeadlineList, DeadlineSummary
from dataponto.deadlines.urgency import Urgency, days_until


URGENCY_STYLES = {
    Urgency.OVERDUE: ("Atrasado", "white on red"),
    Urgency.TODAY: ("Hoje", "white on dark_orange"),
    Urgency.URGENT: ("Urgente", "black on yellow"),
    Urgency.SOON: ("Em breve", "white on blue"),
    Urgency.NORMAL: ("Normal", "white on grey42"),
}

SOURCE_LABELS = {
    "project": "[magenta]Projeto[/magenta]",
    "appointment": "[blue]Compromisso[/blue]",
    "goal": "[green]Meta[/green]",
}


class DeadlineFormatter:
    """
    Rich-based formatter for the deadline view.
    """

    def __init__(self, console: Optional[Console] = None):
        """
        Initialize formatter.

        Args:
            console: Rich Console instance (creates default if not provided)
        """
        self.console = console or Console()

    def _format_urgency(self, urgency: Urgency) -> str:
        label, style = URGENCY_STYLES[urgency]
        return f"[{style}] {label} [/{style}]"

    def _format_relative(self, item: DeadlineItem, now: datetime) -> str:
        """Days-left text, e.g. '3 dias atrás', 'amanhã', 'em 5 dias'."""
        days = days_until(item.date, now)
        if days < 0:
            abs_days = abs(days)
            return f"[red]{abs_days} dia{'s' if abs_days != 1 else ''} atrás[/red]"
        elif days == 0:
            return "[dark_orange]hoje[/dark_orange]"
        elif days == 1:
            return "[yellow]amanhã[/yellow]"
        return f"[dim]em {days} dias[/dim]"

    def format_summary(self, summary: DeadlineSummary) -> Panel:
        """
        Create the counters row (overdue, today, next 3 days, total).

        Args:
            summary: Counters from DeadlineList.summary()

        Returns:
            Rich Panel with one row of counters
        """
        table = Table(show_header=False, box=None, expand=True, padding=(0, 2))
        for _ in range(4):
            table.add_column(justify="center", ratio=1)

        overdue_style = "red bold" if summary.overdue else "dim"
        today_style = "dark_orange bold" if summary.today else "dim"
        urgent_style = "yellow bold" if summary.urgent else "dim"

        table.add_row(
            f"[{overdue_style}]{summary.overdue}[/{overdue_style}]",
            f"[{today_style}]{summary.today}[/{today_style}]",
            f"[{urgent_style}]{summary.urgent}[/{urgent_style}]",
            f"[bold]{summary.total}[/bold]",
        )
        table.add_row(
            "[dim]Atrasados[/dim]",
            "[dim]Hoje[/dim]",
            "[dim]Próx. 3 dias[/dim]",
            "[dim]Total[/dim]",
        )

        return Panel(
            table,
            title="[bold]Prazos & Notificações[/bold]",
            title_align="center",
            border_style="blue",
            padding=(0, 1),
        )

    def format_items(
        self,
        items: List[DeadlineItem],
        now: datetime,
        title: str = "Todos"
    ) -> Panel:
        """
        Create the deadline table.

        Args:
            items: Deadlines to show (already filtered)
            now: Reference time for relative dates
            title: Panel title (the active filter)

        Returns:
            Rich Panel with one row per deadline
        """
        if not items:
            return Panel(
                Text("Nenhum prazo encontrado", style="dim", justify="center"),
                title=f"[bold]{title}[/bold]",
                border_style="green",
                padding=(0, 1),
            )

        table = Table(box=box.SIMPLE, expand=True, padding=(0, 1))
        table.add_column("Urgência", width=12, no_wrap=True)
        table.add_column("Tipo", width=12)
        table.add_column("Título", ratio=1)
        table.add_column("Data", width=16, no_wrap=True)
        table.add_column("Prazo", width=14, justify="right")

        for item in items:
            date_str = item.date.strftime("%d/%m/%Y")
            if item.time:
                date_str += f" {item.time.strftime('%H:%M')}"

            title_str = item.title[:40] + "..." if len(item.title) > 40 else item.title
            if item.progress is not None:
                title_str += f" [dim]({item.progress}%)[/dim]"

            table.add_row(
                self._format_urgency(item.urgency),
                SOURCE_LABELS.get(item.source_type, item.source_type),
                title_str,
                date_str,
                self._format_relative(item, now),
            )

        return Panel(
            table,
            title=f"[bold]{title}[/bold] [dim]({len(items)})[/dim]",
            border_style="green",
            padding=(0, 1),
        )

    def render(self, deadlines: DeadlineList, filter_name: str = "all") -> None:
        """Print summary and filtered list to the console."""
        now = deadlines.generated_at
        parts = [
            self.format_summary(deadlines.summary()),
            self.format_items(deadlines.filter(filter_name, now), now, title=filter_name),
        ]
        if deadlines.failed_sources:
            failed = ", ".join(deadlines.failed_sources)
            parts.append(Text(f"Falha ao carregar: {failed}", style="red"))

        self.console.print(Group(*parts))
