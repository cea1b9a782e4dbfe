"""Tests for the per-client calendar session (periods, refresh, edits)."""

from datetime import date, datetime, time

import pytest

from calendario.core.exceptions import NotFoundError, ValidationError
from calendario.services.calendar_session import (
    CalendarSession,
    Period,
    default_period,
    group_periods,
)
from calendario.services.calendar_types import EditableField, ReasonCode
from fakes import FakeStore, make_client_process, make_instance

TODAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 11, 0)


def _store():
    return FakeStore(
        client_processes=[
            make_client_process(10, 2025, 3),
            make_client_process(11, 2025, 3, process_name="Nóminas"),
            make_client_process(12, 2025, 4),
            make_client_process(13, 2024, 12),
            make_client_process(14, None, None),
            make_client_process(20, 2025, 3, client_id="C002"),
        ],
        instances=[
            make_instance(1, client_process_id=10, template_id=7, deadline_date=date(2025, 3, 20)),
            make_instance(2, client_process_id=11, template_id=8, deadline_date=date(2025, 3, 25)),
            make_instance(3, client_process_id=12, template_id=7, deadline_date=date(2025, 4, 20)),
        ],
    )


def _session(store=None):
    return CalendarSession(store or _store(), "C001", today=TODAY, clock=lambda: NOW)


class TestPeriods:
    def test_group_orders_year_desc_month_asc(self):
        periods = group_periods(_store().fetch_client_process_instances("C001"))
        assert [p.key for p in periods] == ["2025-03", "2025-04", "2024-12"]
        assert periods[0].client_process_ids == (10, 11)

    def test_default_is_current_month(self):
        periods = [Period(2025, 4, (12,)), Period(2025, 3, (10,))]
        assert default_period(periods, TODAY).key == "2025-03"

    def test_default_falls_back_to_first(self):
        periods = [Period(2025, 4, (12,))]
        assert default_period(periods, TODAY).key == "2025-04"
        assert default_period([], TODAY) is None

    def test_label(self):
        assert Period(2025, 3).label == "Marzo 2025"


class TestOpen:
    def test_open_loads_default_period(self):
        session = _session()
        session.open()
        assert session.selected_period.key == "2025-03"
        assert sorted(i.id for i in session.instances) == [1, 2]

    def test_open_unknown_period(self):
        session = _session()
        with pytest.raises(NotFoundError):
            session.open("2030-01")

    def test_read_failure_gives_empty_calendar(self):
        store = _store()
        store.fail_reads = True
        session = _session(store)
        session.open()
        assert session.periods == []
        assert session.instances == []

    def test_switching_period_drops_pending_edits(self):
        session = _session()
        session.open()
        session.tracker.stage_edit(1, EditableField.DEADLINE_DATE, date(2025, 3, 21))
        session.select_period("2025-04")
        assert not session.tracker.has_changes
        assert [i.id for i in session.instances] == [3]


class TestCommitAndEdit:
    def test_commit_refreshes_from_store(self):
        session = _session()
        session.open()
        session.tracker.stage_edit(1, EditableField.DEADLINE_DATE, date(2025, 3, 22))

        outcome = session.commit(ReasonCode.CLIENT_REQUEST, "moved")

        assert outcome.status == "success"
        refreshed = next(i for i in session.instances if i.id == 1)
        assert refreshed.deadline_date == date(2025, 3, 22)
        assert refreshed.status_changed_at == NOW

    def test_edit_outside_period_returns_notice(self):
        session = _session()
        session.open()
        outcome, notice = session.edit_instance(1, date(2025, 4, 2), time(10, 0), ReasonCode.CLIENT_REQUEST)
        assert outcome.status == "success"
        assert "Marzo 2025" in notice

    def test_edit_inside_period_has_no_notice(self):
        session = _session()
        session.open()
        _, notice = session.edit_instance(1, date(2025, 3, 28), None, ReasonCode.CLIENT_REQUEST)
        assert notice is None

    def test_change_summary(self):
        session = _session()
        session.open()
        session.tracker.stage_edit(2, EditableField.DEADLINE_TIME, time(12, 0))
        assert session.change_summary() == ["Hito 8: hora_limite (- → 12:00)"]


class TestEnableToggle:
    def test_disable_single_instance_keeps_status(self):
        store = _store()
        session = _session(store)
        session.open()

        updated = session.set_enabled(1, False)

        assert updated.enabled is False
        update = store.updates[0][1]
        assert update.fields == {"habilitado": False}
        assert update.status_changed_at is None
        assert store.audits == []

    def test_non_boolean_rejected(self):
        session = _session()
        with pytest.raises(ValidationError):
            session.set_enabled(1, "no")

    def test_unknown_instance(self):
        with pytest.raises(NotFoundError):
            _session().set_enabled(99, True)


class TestCascadeFromSession:
    def test_disable_refreshes(self):
        store = _store()
        session = _session(store)
        session.open()

        outcome = session.disable("hitos", [7], date(2025, 3, 1))

        assert outcome.status == "success"
        by_id = {i.id: i for i in session.instances}
        assert by_id[1].enabled is False
        assert store.instances[3].enabled is False
