"""
Audit Diff Builder

Turns a (field, previous, new) triple into an AuditRecord stamped with the
acting user, the reason code and the optional note.  Values are rendered
the way the audit trail stores them: dates as ``YYYY-MM-DD``, times as
``HH:MM``, missing values as None.

Usage:
    from calendario.services.audit_builder import build_record

    record = build_record(instance, EditableField.DEADLINE_DATE,
                          date(2025, 3, 10), date(2025, 3, 14),
                          ReasonCode.CLIENT_REQUEST, "moved by client", user)
"""

from __future__ import annotations

from datetime import date, datetime, time

from calendario.services.calendar_types import (
    UNTOUCHED_FIELD,
    ActingUser,
    AuditRecord,
    EditableField,
    MilestoneInstance,
    ReasonCode,
)

UNTOUCHED_PREVIOUS = "Sin cambios específicos"
UNTOUCHED_NEW = "Hito editado desde modal"


def normalize_time(value) -> str | None:
    """Render a time (or ``HH:MM[:SS]`` string) as ``HH:MM``.

    Blank values become None so that ``""``, ``None`` and a missing time
    compare equal.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    text = str(value).strip()
    if not text:
        return None
    parts = text.split(":")
    if len(parts) < 2 or not (parts[0].isdigit() and parts[1].isdigit()):
        return text
    return f"{int(parts[0]):02d}:{int(parts[1]):02d}"


def format_value(field: EditableField | str, value) -> str | None:
    field = EditableField(field)
    if field is EditableField.DEADLINE_TIME:
        return normalize_time(value)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def values_differ(field: EditableField | str, previous, new) -> bool:
    return format_value(field, previous) != format_value(field, new)


def build_record(
    instance: MilestoneInstance,
    field: EditableField | str,
    previous,
    new,
    reason: ReasonCode,
    note: str | None,
    acting_user: ActingUser,
    modified_at: datetime | None = None,
) -> AuditRecord:
    """Build one audit record.  Always emits; callers decide whether the
    values actually differ."""
    field = EditableField(field)
    return AuditRecord(
        client_id=instance.client_id,
        instance_id=instance.id,
        template_id=instance.template_id,
        field=field.value,
        previous_value=format_value(field, previous),
        new_value=format_value(field, new),
        username=acting_user.username,
        reason=reason,
        modified_at=modified_at or datetime.now(),
        note=note or None,
        subdepartment_code=acting_user.subdepartment_code,
        process_name=instance.process_name,
        template_name=instance.template_name,
    )


def build_untouched_record(
    instance: MilestoneInstance,
    reason: ReasonCode,
    note: str | None,
    acting_user: ActingUser,
    modified_at: datetime | None = None,
) -> AuditRecord:
    """Record that an instance was saved without any field difference.

    Keeps the note on the trail even though nothing changed.
    """
    return AuditRecord(
        client_id=instance.client_id,
        instance_id=instance.id,
        template_id=instance.template_id,
        field=UNTOUCHED_FIELD,
        previous_value=UNTOUCHED_PREVIOUS,
        new_value=UNTOUCHED_NEW,
        username=acting_user.username,
        reason=reason,
        modified_at=modified_at or datetime.now(),
        note=note or None,
        subdepartment_code=acting_user.subdepartment_code,
        process_name=instance.process_name,
        template_name=instance.template_name,
    )


def diff_instance(
    instance: MilestoneInstance,
    new_date: date | None,
    new_time: time | None,
) -> list[tuple[EditableField, object, object]]:
    """Field differences between *instance* and the proposed values, in
    fixed (date, time) order."""
    out = []
    if values_differ(EditableField.DEADLINE_DATE, instance.deadline_date, new_date):
        out.append((EditableField.DEADLINE_DATE, instance.deadline_date, new_date))
    if values_differ(EditableField.DEADLINE_TIME, instance.deadline_time, new_time):
        out.append((EditableField.DEADLINE_TIME, instance.deadline_time, new_time))
    return out
