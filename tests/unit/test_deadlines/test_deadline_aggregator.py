"""
Unit tests for the deadline aggregator.
Tests source fetching, date ordering, filter projections and partial
failure handling.
"""

import pytest
from dataclasses import FrozenInstanceError
from datetime import date, datetime, time

from conftest import ALICE, BOB, MockConfig, add_appointment, add_goal, add_project
from dataponto.deadlines.aggregator import (
    DeadlineAggregator,
    DeadlineItem,
    DeadlineList,
    FILTERS,
)
from dataponto.deadlines.urgency import Urgency


NOW = datetime(2025, 3, 10, 9, 0)


@pytest.fixture
def aggregator(db, config):
    """Create an aggregator instance for testing."""
    return DeadlineAggregator(db, config)


def _item(id, day, source_type="project", urgency=Urgency.NORMAL):
    return DeadlineItem(
        id=id,
        title=id,
        source_type=source_type,
        date=day,
        urgency=urgency,
    )


class TestFetchProjects:
    """Tests for fetch_projects()."""

    def test_overdue_project_is_tagged(self, db, aggregator):
        """A project due yesterday that is still executing is overdue."""
        add_project(db, "p1", "Site novo", "2025-03-09", status="executing")

        items = aggregator.fetch_projects(now=NOW)

        assert len(items) == 1
        assert items[0].source_type == "project"
        assert items[0].title == "Site novo"
        assert items[0].urgency is Urgency.OVERDUE
        assert items[0].route == "/projetos"

    def test_excludes_completed_and_undated(self, db, aggregator):
        add_project(db, "p1", "Done", "2025-03-12", status="completed")
        add_project(db, "p2", "No date", None)
        add_project(db, "p3", "Open", "2025-03-12")

        items = aggregator.fetch_projects(now=NOW)

        assert [i.id for i in items] == ["p3"]


class TestFetchAppointments:
    """Tests for fetch_appointments()."""

    def test_only_today_onwards(self, db, aggregator):
        add_appointment(db, "a1", "Ontem", "2025-03-09", "10:00")
        add_appointment(db, "a2", "Hoje", "2025-03-10", "08:00")
        add_appointment(db, "a3", "Amanhã", "2025-03-11", "14:30")

        items = aggregator.fetch_appointments(now=NOW)

        assert [i.id for i in items] == ["a2", "a3"]
        assert items[0].urgency is Urgency.TODAY
        assert items[1].time == time(14, 30)

    def test_keeps_todays_past_appointments(self, db, aggregator):
        """Date filter is by calendar day, not by start time."""
        add_appointment(db, "a1", "Cedo", "2025-03-10", "07:00")

        items = aggregator.fetch_appointments(now=NOW)

        assert len(items) == 1


class TestFetchGoals:
    """Tests for fetch_goals()."""

    def test_excludes_completed_goals(self, db, aggregator):
        add_goal(db, "g1", "Ler 10 livros", "2025-06-30", progress=40)
        add_goal(db, "g2", "Feita", "2025-03-01", status="completed")

        items = aggregator.fetch_goals(now=NOW)

        assert len(items) == 1
        assert items[0].progress == 40
        assert items[0].urgency is Urgency.NORMAL


class TestAggregate:
    """Tests for aggregate()."""

    def test_sorted_by_date_across_sources(self, db, aggregator):
        """Output is non-decreasing by date regardless of source order."""
        add_goal(db, "g1", "Meta", "2025-03-11")
        add_project(db, "p1", "Projeto", "2025-03-20")
        add_appointment(db, "a1", "Reunião", "2025-03-10", "10:00")
        add_project(db, "p2", "Atrasado", "2025-03-01")

        result = aggregator.aggregate(now=NOW)

        dates = [i.date for i in result]
        assert dates == sorted(dates)
        assert [i.id for i in result] == ["p2", "a1", "g1", "p1"]

    def test_defaults_to_configured_now(self, db):
        """Without an explicit now, tiers are computed from Config.now()."""
        config = MockConfig()
        config.now = lambda: NOW
        add_project(db, "p1", "Projeto", "2025-03-10")

        result = DeadlineAggregator(db, config).aggregate()

        assert result.generated_at == NOW
        assert result.items[0].urgency is Urgency.TODAY

    def test_ties_keep_fetch_order(self, db, aggregator):
        """Same-date items stay in project, appointment, goal order."""
        add_goal(db, "g1", "Meta", "2025-03-12")
        add_appointment(db, "a1", "Reunião", "2025-03-12", "10:00")
        add_project(db, "p1", "Projeto", "2025-03-12")

        result = aggregator.aggregate(now=NOW)

        assert [i.source_type for i in result] == ["project", "appointment", "goal"]

    def test_failed_source_does_not_hide_others(self, db, aggregator):
        add_project(db, "p1", "Projeto", "2025-03-12")
        add_goal(db, "g1", "Meta", "2025-03-13")
        db.fail_on = "FROM appointments"

        result = aggregator.aggregate(now=NOW)

        assert result.failed_sources == ("appointment",)
        assert {i.id for i in result} == {"p1", "g1"}

    def test_empty_store(self, aggregator):
        result = aggregator.aggregate(now=NOW)

        assert len(result) == 0
        assert result.summary().total == 0
        assert result.generated_at == NOW

    def test_private_workspace_scopes_to_viewer(self, db):
        """With shared_workspace off, each viewer only sees their own rows."""
        aggregator = DeadlineAggregator(db, MockConfig(settings={"shared_workspace": False}))
        add_project(db, "p1", "Meu", "2025-03-12", user_id=ALICE)
        add_project(db, "p2", "Dele", "2025-03-12", user_id=BOB)
        add_goal(db, "g1", "Meta dele", "2025-03-12", created_by=BOB)

        result = aggregator.aggregate(viewer_id=ALICE, now=NOW)

        assert [i.id for i in result] == ["p1"]

    def test_shared_workspace_ignores_viewer(self, db, aggregator):
        add_project(db, "p1", "Meu", "2025-03-12", user_id=ALICE)
        add_project(db, "p2", "Dele", "2025-03-12", user_id=BOB)

        result = aggregator.aggregate(viewer_id=ALICE, now=NOW)

        assert len(result) == 2


class TestDeadlineListFilter:
    """Tests for DeadlineList.filter() projections."""

    @pytest.fixture
    def deadlines(self):
        items = (
            _item("late", date(2025, 3, 9), urgency=Urgency.OVERDUE),
            _item("today", date(2025, 3, 10), "appointment", Urgency.TODAY),
            _item("soon3", date(2025, 3, 13), "goal", Urgency.URGENT),
            _item("week", date(2025, 3, 17), urgency=Urgency.SOON),
            _item("later", date(2025, 3, 18), "goal", Urgency.NORMAL),
        )
        return DeadlineList(items=items, generated_at=NOW)

    def test_all_returns_everything(self, deadlines):
        assert [i.id for i in deadlines.filter("all")] == [
            "late", "today", "soon3", "week", "later",
        ]

    def test_overdue_project_in_all_and_overdue_not_today(self, deadlines):
        assert "late" in [i.id for i in deadlines.filter("all")]
        assert [i.id for i in deadlines.filter("overdue")] == ["late"]
        assert "late" not in [i.id for i in deadlines.filter("today")]

    def test_urgent_includes_today(self, deadlines):
        assert [i.id for i in deadlines.filter("urgent")] == ["today", "soon3"]

    def test_week_is_zero_to_seven_days(self, deadlines):
        assert [i.id for i in deadlines.filter("week")] == ["today", "soon3", "week"]

    @pytest.mark.parametrize("source_type", ["project", "appointment", "goal"])
    def test_source_filter(self, deadlines, source_type):
        items = deadlines.filter(source_type)
        assert items
        assert all(i.source_type == source_type for i in items)

    def test_filter_does_not_mutate(self, deadlines):
        before = deadlines.items
        filtered = deadlines.filter("overdue")
        filtered.clear()

        assert deadlines.items == before
        assert len(deadlines.filter("all")) == 5

    def test_list_is_read_only(self, deadlines):
        with pytest.raises(FrozenInstanceError):
            deadlines.items = ()

    def test_unknown_filter_raises(self, deadlines):
        with pytest.raises(ValueError):
            deadlines.filter("tomorrow")

    def test_every_filter_name_is_accepted(self, deadlines):
        for name in FILTERS:
            deadlines.filter(name)

    def test_summary_counts_unfiltered(self, deadlines):
        summary = deadlines.summary()

        assert summary.overdue == 1
        assert summary.today == 1
        assert summary.urgent == 1
        assert summary.total == 5


class TestDeadlineItem:
    """Tests for DeadlineItem serialization."""

    def test_to_dict(self):
        item = DeadlineItem(
            id="a1",
            title="Reunião",
            source_type="appointment",
            date=date(2025, 3, 10),
            urgency=Urgency.TODAY,
            time=time(9, 30),
        )

        assert item.to_dict() == {
            "id": "a1",
            "title": "Reunião",
            "source_type": "appointment",
            "date": "2025-03-10",
            "time": "09:30",
            "urgency": "today",
            "status": None,
            "progress": None,
            "route": "/agenda",
        }
