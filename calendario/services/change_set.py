"""
Change-Set Tracker

Holds in-flight deadline edits for the loaded milestone instances and
commits them as one batch: one partial update per instance, then one
audit record per changed field of every instance that was persisted.

Staging a value equal to the persisted one removes the pending entry, so
``list_changes()`` only ever shows real differences.

Usage:
    tracker = ChangeSetTracker(store)
    tracker.load(instances)
    tracker.stage_edit(42, EditableField.DEADLINE_DATE, date(2025, 3, 14))
    outcome = tracker.commit(ReasonCode.CLIENT_REQUEST, note="client asked")
    # -> BatchOutcome(status="success", ...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from calendario.core.exceptions import NotFoundError, PersistenceError, ValidationError
from calendario.services.audit_builder import (
    build_record,
    build_untouched_record,
    diff_instance,
    format_value,
    values_differ,
)
from calendario.services.calendar_types import (
    AuditRecord,
    BatchOutcome,
    EditableField,
    InstanceUpdate,
    MilestoneInstance,
    ReasonCode,
)

logger = logging.getLogger(__name__)

_ATTRIBUTE = {
    EditableField.DEADLINE_DATE: "deadline_date",
    EditableField.DEADLINE_TIME: "deadline_time",
}
_FIELD_ORDER = (EditableField.DEADLINE_DATE, EditableField.DEADLINE_TIME)


@dataclass(frozen=True)
class StagedChange:
    instance_id: int
    field: EditableField
    previous: object
    new: object

    def to_dict(self) -> dict:
        return {
            "cliente_proceso_hito_id": self.instance_id,
            "campo": self.field.value,
            "valor_anterior": format_value(self.field, self.previous),
            "valor_nuevo": format_value(self.field, self.new),
        }


def require_reason(reason) -> ReasonCode:
    """Coerce *reason* to a ReasonCode or raise ValidationError."""
    try:
        code = ReasonCode.from_raw(reason)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"motivo": "invalid"}) from exc
    if code is None:
        raise ValidationError("A reason code is required", details={"motivo": "required"})
    return code


class ChangeSetTracker:
    """Pending edits keyed by instance id, diffed against the last
    persisted values.

    Args:
        store: CalendarStore used for updates, audit writes and identity.
        clock: Returns the instant stamped on updates and audit rows.
    """

    def __init__(self, store, clock=datetime.now):
        self._store = store
        self._clock = clock
        self._instances: dict[int, MilestoneInstance] = {}
        self._pending: dict[int, dict[EditableField, object]] = {}

    # ── Baseline ─────────────────────────────────────────────────────────

    def load(self, instances: list[MilestoneInstance]) -> None:
        """Replace the persisted baseline.

        Pending edits of instances that are no longer loaded are dropped.
        """
        self._instances = {inst.id: inst for inst in instances}
        for instance_id in list(self._pending):
            if instance_id not in self._instances:
                del self._pending[instance_id]

    def _instance(self, instance_id: int) -> MilestoneInstance:
        try:
            return self._instances[instance_id]
        except KeyError:
            raise NotFoundError("ClienteProcesoHito", instance_id) from None

    # ── Staging ──────────────────────────────────────────────────────────

    def stage_edit(self, instance_id: int, field: EditableField | str, value) -> None:
        """Stage *value* for one field of one instance.

        Raises:
            ValidationError: blank deadline date; ``details["keep"]`` holds
                the value the caller should put back.
            NotFoundError: *instance_id* is not loaded.
        """
        instance = self._instance(instance_id)
        field = EditableField(field)
        if field is EditableField.DEADLINE_DATE and (value is None or value == ""):
            keep = self.value_for(instance_id, field)
            raise ValidationError(
                "The deadline date cannot be empty",
                details={"keep": format_value(field, keep)},
            )
        if field is EditableField.DEADLINE_TIME and value == "":
            value = None

        persisted = getattr(instance, _ATTRIBUTE[field])
        if values_differ(field, persisted, value):
            self._pending.setdefault(instance_id, {})[field] = value
            return

        fields = self._pending.get(instance_id)
        if fields is not None:
            fields.pop(field, None)
            if not fields:
                del self._pending[instance_id]

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def has_changes(self) -> bool:
        return bool(self._pending)

    def value_for(self, instance_id: int, field: EditableField | str):
        """Staged value if any, else the persisted one."""
        field = EditableField(field)
        fields = self._pending.get(instance_id, {})
        if field in fields:
            return fields[field]
        return getattr(self._instance(instance_id), _ATTRIBUTE[field])

    def list_changes(self) -> list[StagedChange]:
        """Staged changes in staging order of the instances, date before
        time within an instance."""
        out = []
        for instance_id, fields in self._pending.items():
            instance = self._instances[instance_id]
            for field in _FIELD_ORDER:
                if field in fields:
                    out.append(StagedChange(
                        instance_id=instance_id,
                        field=field,
                        previous=getattr(instance, _ATTRIBUTE[field]),
                        new=fields[field],
                    ))
        return out

    def summary_lines(self) -> list[str]:
        """``"<milestone>: <field> (old → new)"`` per staged change."""
        lines = []
        for change in self.list_changes():
            instance = self._instances[change.instance_id]
            name = instance.template_name or f"Hito {instance.id}"
            lines.append(
                f"{name}: {change.field.value} "
                f"({format_value(change.field, change.previous) or '-'} → "
                f"{format_value(change.field, change.new) or '-'})"
            )
        return lines

    # ── Discarding ───────────────────────────────────────────────────────

    def cancel(self) -> None:
        self._pending.clear()

    def discard_instance(self, instance_id: int) -> None:
        self._pending.pop(instance_id, None)

    # ── Commit ───────────────────────────────────────────────────────────

    def commit(self, reason, note: str | None = None) -> BatchOutcome:
        """Persist every staged instance and audit its changed fields.

        The reason is checked before anything is written.  A failed
        instance does not stop the others and gets no audit rows.  All
        pending edits are discarded afterwards, whatever the outcome.
        """
        reason = require_reason(reason)
        outcome = BatchOutcome(operation="commit")
        if not self._pending:
            return outcome

        acting_user = self._store.get_acting_user_identity()
        now = self._clock()
        for instance_id, fields in list(self._pending.items()):
            instance = self._instances[instance_id]
            if not self._persist(instance, dict(fields), now, outcome):
                continue
            for field in _FIELD_ORDER:
                if field not in fields:
                    continue
                record = build_record(
                    instance, field,
                    getattr(instance, _ATTRIBUTE[field]), fields[field],
                    reason, note, acting_user, now,
                )
                self._write_audit(record, outcome)

        self._pending.clear()
        self._log_outcome(outcome, instance_count=outcome.attempted)
        return outcome

    def commit_instance(
        self,
        instance_id: int,
        deadline_date,
        deadline_time,
        reason,
        note: str | None = None,
    ) -> BatchOutcome:
        """Save one instance from the edit dialog.

        Both fields are written.  When neither differs from the persisted
        values a single ``hito_completo`` audit row carries the note.
        """
        reason = require_reason(reason)
        instance = self._instance(instance_id)
        if deadline_date is None or deadline_date == "":
            raise ValidationError(
                "The deadline date cannot be empty",
                details={"keep": format_value(EditableField.DEADLINE_DATE, instance.deadline_date)},
            )
        if deadline_time == "":
            deadline_time = None

        outcome = BatchOutcome(operation="commit")
        acting_user = self._store.get_acting_user_identity()
        now = self._clock()
        fields = {
            EditableField.DEADLINE_DATE: deadline_date,
            EditableField.DEADLINE_TIME: deadline_time,
        }
        changes = diff_instance(instance, deadline_date, deadline_time)
        if self._persist(instance, fields, now, outcome):
            if changes:
                for field, previous, new in changes:
                    self._write_audit(
                        build_record(instance, field, previous, new, reason, note, acting_user, now),
                        outcome,
                    )
            else:
                self._write_audit(
                    build_untouched_record(instance, reason, note, acting_user, now), outcome,
                )
        self._pending.pop(instance_id, None)
        self._log_outcome(outcome, instance_count=1)
        return outcome

    # ── Internals ────────────────────────────────────────────────────────

    def _persist(self, instance, fields, now, outcome: BatchOutcome) -> bool:
        update = InstanceUpdate(
            status=instance.status,
            status_changed_at=now,
            fields={field.value: value for field, value in fields.items()},
        )
        try:
            persisted = self._store.persist_milestone_instance_update(instance.id, update)
        except PersistenceError as exc:
            logger.warning(
                "Milestone instance update failed: %s", exc,
                extra={"instance_id": instance.id, "client_id": instance.client_id,
                       "event_type": "calendar.update_failed"},
            )
            outcome.record_failure(instance.id)
            return False
        outcome.record_success()
        if persisted is not None:
            self._instances[instance.id] = persisted
        return True

    def _write_audit(self, record: AuditRecord, outcome: BatchOutcome) -> None:
        try:
            self._store.create_audit_record(record)
        except PersistenceError as exc:
            logger.warning(
                "Audit record not written for %s: %s", record.field, exc,
                extra={"instance_id": record.instance_id, "client_id": record.client_id,
                       "event_type": "calendar.audit_failed"},
            )
            outcome.audit_failed += 1
            return
        outcome.audit_written += 1

    @staticmethod
    def _log_outcome(outcome: BatchOutcome, instance_count: int) -> None:
        logger.info(
            "Calendar commit %s: %d/%d instance(s), %d audit row(s), %d audit failure(s)",
            outcome.status, outcome.succeeded, instance_count,
            outcome.audit_written, outcome.audit_failed,
            extra={"event_type": "calendar.commit"},
        )
