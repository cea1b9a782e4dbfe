"""
Calendar engine value types.

Plain data carried between the record store and the engine services.
Nothing here talks to the database or the network.

    MilestoneInstance   one datable milestone occurrence (ClienteProcesoHito)
    CompletionRecord    one completion event (ClienteProcesoHitoCumplimiento)
    ClientProcessInstance  one (client, process, period) row (ClienteProceso)
    InstanceUpdate      partial update command for a milestone instance
    AuditRecord         immutable audit row (AuditoriaCalendario)
    ActingUser          identity of whoever commits a change
    BatchOutcome        aggregate result of a bulk operation

Calendar dates are ``datetime.date``; instants are naive
``datetime.datetime`` in the console's wall clock.  The two are never mixed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum, IntEnum

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class LifecycleStatus(str, Enum):
    """Stored lifecycle state of a milestone instance."""
    OPEN = "Nuevo"
    COMPLETED = "Finalizado"

    @classmethod
    def from_raw(cls, value) -> "LifecycleStatus":
        """Map a stored status string onto the closed enumeration.

        ``Pendiente`` is the legacy spelling the console wrote as a fallback
        for open milestones.  Anything else is rejected.
        """
        if isinstance(value, cls):
            return value
        text = (value or "").strip()
        if text in _STATUS_ALIASES:
            return _STATUS_ALIASES[text]
        raise ValueError(f"Unknown milestone status: {value!r}")


_STATUS_ALIASES = {
    "Nuevo": LifecycleStatus.OPEN,
    "Pendiente": LifecycleStatus.OPEN,
    "Finalizado": LifecycleStatus.COMPLETED,
}


class DisplayStatus(str, Enum):
    """Derived compliance category.  Never stored."""
    COMPLETED_ON_TIME = "completed_on_time"
    COMPLETED_LATE = "completed_late"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    PENDING_ON_TIME = "pending_on_time"
    NO_DATE = "no_date"

    @property
    def label(self) -> str:
        return DISPLAY_STATUS_LABELS[self]

    @classmethod
    def parse_many(cls, raw) -> frozenset["DisplayStatus"]:
        """Parse a comma-separated string or iterable of category names."""
        if not raw:
            return frozenset()
        if isinstance(raw, str):
            raw = raw.split(",")
        out = set()
        for item in raw:
            item = str(item).strip()
            if not item:
                continue
            try:
                out.add(cls(item))
            except ValueError:
                raise ValueError(f"Unknown display status: {item!r}") from None
        return frozenset(out)


DISPLAY_STATUS_LABELS = {
    DisplayStatus.COMPLETED_ON_TIME: "Cumplido en plazo",
    DisplayStatus.COMPLETED_LATE: "Cumplido fuera de plazo",
    DisplayStatus.DUE_TODAY: "Vence hoy",
    DisplayStatus.OVERDUE: "Pendiente fuera de plazo",
    DisplayStatus.PENDING_ON_TIME: "Pendiente en plazo",
    DisplayStatus.NO_DATE: "Sin fecha",
}


class ReasonCode(IntEnum):
    """Mandatory justification for a deadline edit."""
    CONFIGURATION = 1
    ATISA_REQUEST = 2
    CLIENT_REQUEST = 3
    THIRD_PARTY_REQUEST = 4

    @property
    def label(self) -> str:
        return REASON_LABELS[self]

    @classmethod
    def from_raw(cls, value) -> "ReasonCode | None":
        """Return the reason for *value*, or None when it is unset (0/''/None).

        Raises ValueError for a set value that is not a known code.
        """
        if isinstance(value, cls):
            return value
        if value in (None, "", 0, "0"):
            return None
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Unknown reason code: {value!r}") from None


REASON_LABELS = {
    ReasonCode.CONFIGURATION: "Configuración",
    ReasonCode.ATISA_REQUEST: "A petición de Atisa",
    ReasonCode.CLIENT_REQUEST: "A petición de cliente",
    ReasonCode.THIRD_PARTY_REQUEST: "A petición de tercero",
}


class EditableField(str, Enum):
    """Instance fields a change-set may touch.  Values are the stored
    column names, which is also what the audit trail records."""
    DEADLINE_DATE = "fecha_limite"
    DEADLINE_TIME = "hora_limite"


# Audit field name for an instance saved without any field difference
UNTOUCHED_FIELD = "hito_completo"


# ═════════════════════════════════════════════════════════════════════════════
# Records
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CompletionRecord:
    """A single completion event.  ``time`` may be missing (00:00 assumed)."""
    id: int | None
    instance_id: int
    date: date
    time: time | None = None
    observation: str | None = None
    user: str | None = None
    document_count: int = 0

    @property
    def timestamp(self) -> datetime:
        return datetime.combine(self.date, self.time or time(0, 0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cliente_proceso_hito_id": self.instance_id,
            "fecha": self.date.isoformat(),
            "hora": self.time.strftime("%H:%M:%S") if self.time else None,
            "observacion": self.observation,
            "usuario": self.user,
            "num_documentos": self.document_count,
        }


@dataclass(frozen=True)
class ClientProcessInstance:
    """One (client, process, period) row."""
    id: int
    client_id: str
    process_id: int
    year: int | None
    month: int | None
    start_date: date | None = None
    process_name: str = ""

    @property
    def period(self) -> str | None:
        """``YYYY-MM`` key, or None when year/month are missing."""
        if not self.year or not self.month:
            return None
        return f"{self.year}-{self.month:02d}"


@dataclass
class MilestoneInstance:
    """The central mutable entity, as last read from the record store."""
    id: int
    client_process_id: int
    template_id: int
    deadline_date: date | None
    deadline_time: time | None = None
    status: LifecycleStatus = LifecycleStatus.OPEN
    status_changed_at: datetime | None = None
    type_tag: str | None = None
    critical: bool = False
    mandatory: bool = False
    enabled: bool = True
    client_id: str | None = None
    process_id: int | None = None
    process_name: str = ""
    template_name: str = ""
    last_completion: CompletionRecord | None = None

    @property
    def last_completion_at(self) -> datetime | None:
        return self.last_completion.timestamp if self.last_completion else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cliente_proceso_id": self.client_process_id,
            "hito_id": self.template_id,
            "cliente_id": self.client_id,
            "proceso_id": self.process_id,
            "proceso_nombre": self.process_name,
            "hito_nombre": self.template_name,
            "estado": self.status.value,
            "fecha_estado": self.status_changed_at.isoformat() if self.status_changed_at else None,
            "fecha_limite": self.deadline_date.isoformat() if self.deadline_date else None,
            "hora_limite": self.deadline_time.strftime("%H:%M") if self.deadline_time else None,
            "tipo": self.type_tag,
            "critico": self.critical,
            "obligatorio": self.mandatory,
            "habilitado": self.enabled,
            "ultimo_cumplimiento": self.last_completion.to_dict() if self.last_completion else None,
        }


@dataclass
class InstanceUpdate:
    """Partial update for one milestone instance.

    ``status`` and ``status_changed_at`` are always sent.  ``fields`` holds
    only the optional columns being written (``fecha_limite``,
    ``hora_limite``, ``habilitado``); anything absent is left untouched.
    """
    status: LifecycleStatus
    status_changed_at: datetime | None
    fields: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        payload = {
            "estado": self.status.value,
            "fecha_estado": self.status_changed_at.isoformat() if self.status_changed_at else None,
        }
        for key, value in self.fields.items():
            if isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, time):
                value = value.strftime("%H:%M")
            elif isinstance(value, bool):
                value = 1 if value else 0
            payload[key] = value
        return payload


@dataclass(frozen=True)
class ActingUser:
    username: str
    subdepartment_code: str | None = None


@dataclass(frozen=True)
class AuditRecord:
    """Append-only audit row.  One per (instance, field) change."""
    client_id: str | None
    instance_id: int
    template_id: int
    field: str
    previous_value: str | None
    new_value: str | None
    username: str
    reason: ReasonCode
    modified_at: datetime
    note: str | None = None
    subdepartment_code: str | None = None
    process_name: str = ""
    template_name: str = ""
    id: int | None = None

    def to_payload(self) -> dict:
        return {
            "cliente_id": self.client_id,
            "hito_id": self.template_id,
            "cliente_proceso_hito_id": self.instance_id,
            "campo_modificado": self.field,
            "valor_anterior": self.previous_value,
            "valor_nuevo": self.new_value,
            "usuario": self.username,
            "observaciones": self.note,
            "motivo": int(self.reason),
            "codSubDepar": self.subdepartment_code,
            "fecha_modificacion": self.modified_at.isoformat(),
            "proceso_nombre": self.process_name,
            "hito_nombre": self.template_name,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Batch outcome
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class BatchOutcome:
    """Aggregate result of a commit or cascading disable.

    The caller gets one summary, never per-item status.  ``failed_ids``
    and the audit counters exist for logging and for the API payload.
    """
    operation: str
    attempted: int = 0
    succeeded: int = 0
    failed_ids: list = field(default_factory=list)
    audit_written: int = 0
    audit_failed: int = 0

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def status(self) -> str:
        if self.attempted == 0:
            return "noop"
        if self.failed == 0:
            return "success"
        if self.succeeded == 0:
            return "failure"
        return "partial"

    @property
    def message(self) -> str:
        if self.status == "noop":
            return f"{self.operation}: nothing to do"
        if self.status == "success":
            return f"{self.operation}: {self.succeeded} item(s) processed"
        if self.status == "failure":
            return f"{self.operation}: all {self.attempted} item(s) failed"
        return (
            f"{self.operation}: succeeded with {self.failed} failure(s) "
            f"out of {self.attempted}"
        )

    def record_success(self) -> None:
        self.attempted += 1
        self.succeeded += 1

    def record_failure(self, item_id) -> None:
        self.attempted += 1
        self.failed_ids.append(item_id)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "status": self.status,
            "message": self.message,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
            "audit_written": self.audit_written,
            "audit_failed": self.audit_failed,
        }
