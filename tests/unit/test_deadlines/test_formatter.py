"""
Unit tests for the deadline formatter.
Renders to an in-memory console and checks the visible text.
"""

import io
from datetime import date, datetime

import pytest
from rich.console import Console

from dataponto.deadlines.aggregator import DeadlineItem, DeadlineList
from dataponto.deadlines.formatter import DeadlineFormatter
from dataponto.deadlines.urgency import Urgency


NOW = datetime(2025, 3, 10, 9, 0)


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def formatter(console):
    return DeadlineFormatter(console)


def _output(console):
    return console.file.getvalue()


class TestRender:
    """Tests for render()."""

    def test_empty_list_message(self, formatter, console):
        formatter.render(DeadlineList(items=(), generated_at=NOW))

        assert "Nenhum prazo encontrado" in _output(console)

    def test_rows_show_relative_days(self, formatter, console):
        items = (
            DeadlineItem("p1", "Projeto atrasado", "project", date(2025, 3, 7), Urgency.OVERDUE),
            DeadlineItem("g1", "Meta", "goal", date(2025, 3, 11), Urgency.URGENT, progress=25),
        )
        formatter.render(DeadlineList(items=items, generated_at=NOW))

        out = _output(console)
        assert "Projeto atrasado" in out
        assert "3 dias atrás" in out
        assert "amanhã" in out
        assert "(25%)" in out

    def test_filter_applies(self, formatter, console):
        items = (
            DeadlineItem("p1", "Projeto atrasado", "project", date(2025, 3, 7), Urgency.OVERDUE),
            DeadlineItem("g1", "Meta distante", "goal", date(2025, 5, 1), Urgency.NORMAL),
        )
        formatter.render(DeadlineList(items=items, generated_at=NOW), "goal")

        out = _output(console)
        assert "Meta distante" in out
        assert "Projeto atrasado" not in out

    def test_reports_failed_sources(self, formatter, console):
        deadlines = DeadlineList(items=(), generated_at=NOW, failed_sources=("goal",))
        formatter.render(deadlines)

        assert "Falha ao carregar: goal" in _output(console)
