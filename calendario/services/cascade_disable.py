"""
Cascading Disable Engine

Disables milestone instances of one client from an effective (cutoff)
date onwards, across every client-process instance that holds them.

Two entry modes:
  - by milestone template: the caller names template ids directly;
  - by process instance: the selected client-process instances are
    resolved to their *enabled* milestone instances and the distinct
    template ids of those are disabled template-wide.

The process mode is deliberately template-wide: instances of the same
template under other processes of the client are disabled as well.

Each template id becomes one idempotent store command.  A failing
command is logged and counted; the remaining ones still run.

Usage:
    engine = CascadingDisableEngine(store)
    outcome = engine.disable(DisableMode.TEMPLATES, [7], date(2025, 6, 1), "C001")
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum

from calendario.core.exceptions import PersistenceError, ValidationError
from calendario.integrations.calendar_store import safe_fetch_instances
from calendario.services.calendar_types import BatchOutcome

logger = logging.getLogger(__name__)


class DisableMode(str, Enum):
    TEMPLATES = "hitos"
    PROCESSES = "procesos"


class CascadingDisableEngine:
    """Issues per-template disable commands against a CalendarStore."""

    def __init__(self, store):
        self._store = store

    def resolve_template_ids(self, client_process_ids: list[int]) -> list[int]:
        """Distinct template ids of the enabled instances under the given
        client-process instances, in first-seen order."""
        if not client_process_ids:
            return []
        instances = safe_fetch_instances(self._store, client_process_ids)
        seen: dict[int, None] = {}
        for instance in instances:
            if instance.enabled:
                seen.setdefault(instance.template_id, None)
        return list(seen)

    def disable_by_templates(
        self,
        template_ids: list[int],
        cutoff: date,
        client_id: str,
    ) -> BatchOutcome:
        """Disable every instance of each template on or after *cutoff*."""
        _require_cutoff(cutoff)
        outcome = BatchOutcome(operation="disable")
        for template_id in dict.fromkeys(template_ids):
            try:
                self._store.disable_instances_by_template_from_date(template_id, cutoff, client_id)
            except PersistenceError as exc:
                logger.warning(
                    "Disable from %s failed for template %s: %s", cutoff, template_id, exc,
                    extra={"client_id": client_id, "template_id": template_id,
                           "event_type": "calendar.disable_failed"},
                )
                outcome.record_failure(template_id)
                continue
            outcome.record_success()

        logger.info(
            "Calendar disable %s: %d/%d template(s) from %s",
            outcome.status, outcome.succeeded, outcome.attempted, cutoff.isoformat(),
            extra={"client_id": client_id, "event_type": "calendar.disable"},
        )
        return outcome

    def disable_by_process_instances(
        self,
        client_process_ids: list[int],
        cutoff: date,
        client_id: str,
    ) -> BatchOutcome:
        """Resolve the processes to templates, then disable template-wide.

        When no enabled instance is found the outcome is ``noop``.
        """
        _require_cutoff(cutoff)
        template_ids = self.resolve_template_ids(client_process_ids)
        if not template_ids:
            logger.info(
                "No enabled milestones under client-process %s; nothing to disable",
                client_process_ids,
                extra={"client_id": client_id, "event_type": "calendar.disable"},
            )
            return BatchOutcome(operation="disable")
        return self.disable_by_templates(template_ids, cutoff, client_id)

    def disable(self, mode: DisableMode | str, ids: list[int], cutoff: date, client_id: str) -> BatchOutcome:
        try:
            mode = DisableMode(mode)
        except ValueError:
            raise ValidationError(
                f"Unknown disable mode: {mode!r}", details={"modo": "invalid"},
            ) from None
        if mode is DisableMode.TEMPLATES:
            return self.disable_by_templates(ids, cutoff, client_id)
        return self.disable_by_process_instances(ids, cutoff, client_id)


def _require_cutoff(cutoff) -> None:
    if not isinstance(cutoff, date):
        raise ValidationError("A cutoff date is required", details={"fecha_desde": "required"})
