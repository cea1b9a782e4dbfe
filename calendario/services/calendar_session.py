"""
Calendar session — one client's calendar, one period at a time.

Wires the record store to the engine pieces and keeps them consistent:

  - groups the client's process instances into ``YYYY-MM`` periods and
    picks the default one (current month when present);
  - loads the selected period's milestone instances into the view and the
    change-set tracker;
  - after every commit, disable or enable toggle that persisted anything,
    re-fetches the period (pull-based, no local patching).

Usage:
    session = CalendarSession(store, "C001", today=utc_today())
    session.open()                       # periods + default period
    session.tracker.stage_edit(42, "fecha_limite", date(2025, 3, 14))
    outcome = session.commit(ReasonCode.CLIENT_REQUEST, "client asked")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from calendario.core.exceptions import NotFoundError, PersistenceError, ValidationError
from calendario.integrations.calendar_store import (
    safe_fetch_client_processes,
    safe_fetch_instances,
)
from calendario.services.calendar_types import (
    BatchOutcome,
    ClientProcessInstance,
    InstanceUpdate,
    MilestoneInstance,
)
from calendario.services.calendar_view import CalendarView
from calendario.services.cascade_disable import CascadingDisableEngine
from calendario.services.change_set import ChangeSetTracker

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
)


# ── Periods ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Period:
    year: int
    month: int
    client_process_ids: tuple = field(default_factory=tuple)

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    def contains(self, day: date | None) -> bool:
        return day is not None and (day.year, day.month) == (self.year, self.month)

    def to_dict(self) -> dict:
        return {
            "periodo": self.key,
            "label": self.label,
            "anio": self.year,
            "mes": self.month,
            "cliente_proceso_ids": list(self.client_process_ids),
        }


def group_periods(client_processes: list[ClientProcessInstance]) -> list[Period]:
    """Periods of the client, year descending then month ascending.

    Instances without year or month belong to no period.
    """
    buckets: dict[tuple[int, int], list[int]] = {}
    for cp in client_processes:
        if not cp.year or not cp.month:
            continue
        buckets.setdefault((int(cp.year), int(cp.month)), []).append(cp.id)
    ordered = sorted(buckets, key=lambda ym: (-ym[0], ym[1]))
    return [Period(year, month, tuple(buckets[(year, month)])) for year, month in ordered]


def default_period(periods: list[Period], today: date) -> Period | None:
    for period in periods:
        if (period.year, period.month) == (today.year, today.month):
            return period
    return periods[0] if periods else None


# ── Session ──────────────────────────────────────────────────────────────────

class CalendarSession:
    """Stateful calendar of one client, owned by a single caller."""

    def __init__(
        self,
        store,
        client_id: str,
        *,
        today: date,
        page_size: int = 10,
        calendar_mode: bool = True,
        clock=datetime.now,
    ):
        self.store = store
        self.client_id = client_id
        self.today = today
        self.tracker = ChangeSetTracker(store, clock=clock)
        self.disabler = CascadingDisableEngine(store)
        self.view = CalendarView(today=today, page_size=page_size, calendar_mode=calendar_mode)
        self.periods: list[Period] = []
        self.selected_period: Period | None = None
        self.instances: list[MilestoneInstance] = []

    # ── Loading ──────────────────────────────────────────────────────────

    def load_periods(self) -> list[Period]:
        self.periods = group_periods(safe_fetch_client_processes(self.store, self.client_id))
        return self.periods

    def open(self, period_key: str | None = None) -> None:
        """Load the periods and select *period_key* (or the default)."""
        self.load_periods()
        if period_key:
            self.select_period(period_key)
            return
        period = default_period(self.periods, self.today)
        if period is not None:
            self._select(period)

    def select_period(self, period_key: str) -> Period:
        """Switch period.  Pending edits of the previous period are dropped."""
        for period in self.periods:
            if period.key == period_key:
                self._select(period)
                return period
        raise NotFoundError("Periodo", period_key)

    def _select(self, period: Period) -> None:
        self.tracker.cancel()
        self.selected_period = period
        self.refresh()

    def refresh(self) -> list[MilestoneInstance]:
        """Re-fetch the selected period's instances."""
        if self.selected_period is None:
            self.instances = []
        else:
            self.instances = safe_fetch_instances(
                self.store, list(self.selected_period.client_process_ids),
            )
        self.view.set_instances(self.instances)
        self.tracker.load(self.instances)
        return self.instances

    def _refresh_after(self, outcome: BatchOutcome) -> None:
        if outcome.succeeded:
            self.refresh()

    # ── Edits ────────────────────────────────────────────────────────────

    def change_summary(self) -> list[str]:
        return self.tracker.summary_lines()

    def commit(self, reason, note: str | None = None) -> BatchOutcome:
        outcome = self.tracker.commit(reason, note)
        self._refresh_after(outcome)
        return outcome

    def edit_instance(self, instance_id: int, deadline_date, deadline_time, reason, note=None):
        """Save one instance from the edit dialog.

        Returns ``(outcome, notice)``; *notice* is set when the new deadline
        falls outside the selected period.
        """
        outcome = self.tracker.commit_instance(instance_id, deadline_date, deadline_time, reason, note)
        notice = None
        if (
            outcome.succeeded
            and self.selected_period is not None
            and isinstance(deadline_date, date)
            and not self.selected_period.contains(deadline_date)
        ):
            notice = (
                f"Deadline moved to {deadline_date.isoformat()}, "
                f"outside the selected period {self.selected_period.label}"
            )
        self._refresh_after(outcome)
        return outcome, notice

    # ── Enable / disable ─────────────────────────────────────────────────

    def disable(self, mode, ids: list[int], cutoff: date) -> BatchOutcome:
        outcome = self.disabler.disable(mode, ids, cutoff, self.client_id)
        self._refresh_after(outcome)
        return outcome

    def set_enabled(self, instance_id: int, enabled: bool) -> MilestoneInstance:
        """Enable or disable a single instance.  Not audited, not cascaded.

        Keeps the instance's status and status-changed timestamp as they are.
        """
        if not isinstance(enabled, bool):
            raise ValidationError("habilitado must be true or false", details={"habilitado": "invalid"})
        instance = self.store.get_milestone_instance(instance_id)
        update = InstanceUpdate(
            status=instance.status,
            status_changed_at=instance.status_changed_at,
            fields={"habilitado": enabled},
        )
        try:
            updated = self.store.persist_milestone_instance_update(instance_id, update)
        except PersistenceError:
            logger.warning(
                "Enable toggle failed", extra={"instance_id": instance_id, "client_id": self.client_id},
            )
            raise
        logger.info(
            "Milestone instance %s %s", instance_id, "enabled" if enabled else "disabled",
            extra={"instance_id": instance_id, "client_id": self.client_id,
                   "event_type": "calendar.toggle"},
        )
        self.refresh()
        return updated or replace(instance, enabled=enabled)
