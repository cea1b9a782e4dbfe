"""
Calendar record store: the persistence contract of the calendar engine.

The engine services never talk to the database or the console's REST API
directly.  They receive a ``CalendarStore`` and call the operations below.
Two implementations exist:

  - ``SqlCalendarStore`` (this module): Flask-SQLAlchemy, same database as
    the console backend.
  - ``CalendarApiGateway`` (calendar_gateway.py): the console's REST API
    over ``requests``.

Every implementation raises ``PersistenceError`` when the backing system
fails, and ``NotFoundError`` when a single lookup misses.

Usage:
    from calendario.integrations.calendar_store import SqlCalendarStore
    store = SqlCalendarStore()
    instances = store.fetch_milestone_instances([10, 11])
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from calendario.core.exceptions import NotFoundError, PersistenceError
from calendario.models import db
from calendario.models.audit import AuditoriaCalendario, write_calendar_audit
from calendario.models.calendar import (
    ClienteProceso,
    ClienteProcesoHito,
    ClienteProcesoHitoCumplimiento,
)
from calendario.services.calendar_types import (
    ActingUser,
    AuditRecord,
    ClientProcessInstance,
    CompletionRecord,
    InstanceUpdate,
    LifecycleStatus,
    MilestoneInstance,
)
from calendario.utils.helpers import parse_date_input, parse_time_input

logger = logging.getLogger(__name__)

# Columns a partial update may write besides estado / fecha_estado
UPDATABLE_FIELDS = ("fecha_limite", "hora_limite", "habilitado")

_COMPLETION_SORT_FIELDS = {"fecha", "id"}


class CalendarStore(ABC):
    """Persistence contract consumed by the calendar services."""

    @abstractmethod
    def fetch_client_process_instances(self, client_id: str) -> list[ClientProcessInstance]:
        """All client-process instances of a client, any period."""

    @abstractmethod
    def fetch_milestone_instances(self, client_process_ids: list[int]) -> list[MilestoneInstance]:
        """Milestone instances of the given client-process instances.

        Completed instances carry their most recent completion.
        """

    @abstractmethod
    def get_milestone_instance(self, instance_id: int) -> MilestoneInstance:
        """Single instance lookup; raises NotFoundError."""

    @abstractmethod
    def fetch_completion_records(
        self,
        instance_id: int,
        limit: int = 1,
        sort_field: str = "fecha",
        sort_dir: str = "desc",
    ) -> list[CompletionRecord]:
        """Completion history of one instance."""

    @abstractmethod
    def persist_milestone_instance_update(
        self, instance_id: int, update: InstanceUpdate,
    ) -> MilestoneInstance:
        """Partial update; fields absent from ``update.fields`` are untouched."""

    @abstractmethod
    def disable_instances_by_template_from_date(
        self, template_id: int, cutoff: date, client_id: str,
    ) -> None:
        """Disable the client's instances of *template_id* due on or after
        *cutoff*.  Idempotent."""

    @abstractmethod
    def create_audit_record(self, record: AuditRecord) -> AuditRecord:
        """Append one audit row."""

    @abstractmethod
    def list_audit_records(
        self,
        client_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict], int]:
        """Audit rows of a client, newest first, as ``(rows, total)``."""

    @abstractmethod
    def get_acting_user_identity(self) -> ActingUser:
        """Whoever is committing the current change."""


# ── Read fallbacks ───────────────────────────────────────────────────────────

def safe_fetch_instances(store: CalendarStore, client_process_ids: list[int]) -> list[MilestoneInstance]:
    """Fetch instances, falling back to an empty list on store failure."""
    try:
        return store.fetch_milestone_instances(client_process_ids)
    except PersistenceError as exc:
        logger.warning("Milestone instances unavailable for %s: %s", client_process_ids, exc,
                       extra={"event_type": "calendar.read_failed"})
        return []


def safe_fetch_client_processes(store: CalendarStore, client_id: str) -> list[ClientProcessInstance]:
    """Fetch a client's process instances, falling back to an empty list."""
    try:
        return store.fetch_client_process_instances(client_id)
    except PersistenceError as exc:
        logger.warning("Client processes unavailable: %s", exc,
                       extra={"client_id": client_id, "event_type": "calendar.read_failed"})
        return []


def safe_fetch_completions(store: CalendarStore, instance_id: int, limit: int = 20) -> list[CompletionRecord]:
    try:
        return store.fetch_completion_records(instance_id, limit=limit)
    except PersistenceError as exc:
        logger.warning("Completion history unavailable: %s", exc,
                       extra={"instance_id": instance_id, "event_type": "calendar.read_failed"})
        return []


# ═════════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementation
# ═════════════════════════════════════════════════════════════════════════════

class SqlCalendarStore(CalendarStore):
    """CalendarStore over the Flask-SQLAlchemy session.

    Args:
        identity_provider: Callable returning the ActingUser.  Defaults to
            the JWT/header resolver in ``calendario.auth``.
    """

    def __init__(self, identity_provider=None):
        if identity_provider is None:
            from calendario.auth import get_acting_user_identity
            identity_provider = get_acting_user_identity
        self._identity_provider = identity_provider

    # ── Reads ────────────────────────────────────────────────────────────

    def fetch_client_process_instances(self, client_id):
        try:
            rows = (
                ClienteProceso.query
                .filter(ClienteProceso.cliente_id == client_id)
                .order_by(ClienteProceso.id)
                .all()
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("ClienteProceso", client_id, str(exc)) from exc
        return [
            ClientProcessInstance(
                id=row.id,
                client_id=row.cliente_id,
                process_id=row.proceso_id,
                year=row.anio,
                month=row.mes,
                start_date=row.fecha_inicio,
                process_name=row.proceso.nombre if row.proceso else "",
            )
            for row in rows
        ]

    def fetch_milestone_instances(self, client_process_ids):
        if not client_process_ids:
            return []
        try:
            rows = (
                ClienteProcesoHito.query
                .filter(ClienteProcesoHito.cliente_proceso_id.in_(client_process_ids))
                .order_by(ClienteProcesoHito.id)
                .all()
            )
            return [self._to_instance(row) for row in rows]
        except (SQLAlchemyError, ValueError) as exc:
            raise PersistenceError("ClienteProcesoHito", None, str(exc)) from exc

    def get_milestone_instance(self, instance_id):
        try:
            row = db.session.get(ClienteProcesoHito, instance_id)
            if row is None:
                raise NotFoundError("ClienteProcesoHito", instance_id)
            return self._to_instance(row)
        except SQLAlchemyError as exc:
            raise PersistenceError("ClienteProcesoHito", instance_id, str(exc)) from exc

    def fetch_completion_records(self, instance_id, limit=1, sort_field="fecha", sort_dir="desc"):
        if sort_field not in _COMPLETION_SORT_FIELDS:
            sort_field = "fecha"
        model = ClienteProcesoHitoCumplimiento
        if sort_field == "fecha":
            columns = [model.fecha, model.hora, model.id]
        else:
            columns = [model.id]
        order = [c.desc() for c in columns] if sort_dir == "desc" else [c.asc() for c in columns]
        try:
            rows = (
                model.query
                .filter(model.cliente_proceso_hito_id == instance_id)
                .order_by(*order)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("ClienteProcesoHitoCumplimiento", instance_id, str(exc)) from exc
        return [_to_completion(row) for row in rows]

    # ── Writes ───────────────────────────────────────────────────────────

    def persist_milestone_instance_update(self, instance_id, update):
        try:
            row = db.session.get(ClienteProcesoHito, instance_id)
            if row is None:
                raise PersistenceError("ClienteProcesoHito", instance_id, "not found")
            row.estado = update.status.value
            row.fecha_estado = update.status_changed_at
            for key, value in update.fields.items():
                _apply_field(row, key, value)
            db.session.commit()
            return self._to_instance(row)
        except (SQLAlchemyError, ValueError) as exc:
            db.session.rollback()
            raise PersistenceError("ClienteProcesoHito", instance_id, str(exc)) from exc

    def disable_instances_by_template_from_date(self, template_id, cutoff, client_id):
        client_processes = (
            db.select(ClienteProceso.id)
            .where(ClienteProceso.cliente_id == client_id)
            .scalar_subquery()
        )
        stmt = (
            db.update(ClienteProcesoHito)
            .where(
                ClienteProcesoHito.hito_id == template_id,
                ClienteProcesoHito.fecha_limite >= cutoff,
                ClienteProcesoHito.cliente_proceso_id.in_(client_processes),
            )
            .values(habilitado=False)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("ClienteProcesoHito", f"hito={template_id}", str(exc)) from exc
        logger.debug(
            "Disabled %s instance(s) of template %s from %s", result.rowcount, template_id, cutoff,
            extra={"client_id": client_id, "template_id": template_id},
        )

    def create_audit_record(self, record):
        try:
            row = write_calendar_audit(
                cliente_id=record.client_id,
                hito_id=record.template_id,
                cliente_proceso_hito_id=record.instance_id,
                campo_modificado=record.field,
                valor_anterior=record.previous_value,
                valor_nuevo=record.new_value,
                motivo=int(record.reason),
                usuario=record.username,
                observaciones=record.note,
                codSubDepar=record.subdepartment_code,
                proceso_nombre=record.process_name,
                hito_nombre=record.template_name,
                fecha_modificacion=record.modified_at,
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("AuditoriaCalendario", record.instance_id, str(exc)) from exc
        return replace(record, id=row.id)

    def list_audit_records(self, client_id, date_from=None, date_to=None, page=1, limit=20):
        q = AuditoriaCalendario.query.filter(AuditoriaCalendario.cliente_id == client_id)
        if date_from:
            q = q.filter(AuditoriaCalendario.fecha_modificacion >= datetime.combine(date_from, datetime.min.time()))
        if date_to:
            q = q.filter(AuditoriaCalendario.fecha_modificacion <= datetime.combine(date_to, datetime.max.time()))
        try:
            total = q.count()
            rows = (
                q.order_by(AuditoriaCalendario.fecha_modificacion.desc(), AuditoriaCalendario.id.desc())
                .offset((max(page, 1) - 1) * limit)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("AuditoriaCalendario", client_id, str(exc)) from exc
        return [r.to_dict() for r in rows], total

    def get_acting_user_identity(self):
        return self._identity_provider()

    # ── Mapping ──────────────────────────────────────────────────────────

    def _to_instance(self, row: ClienteProcesoHito) -> MilestoneInstance:
        cp = row.cliente_proceso
        status = LifecycleStatus.from_raw(row.estado)
        last_completion = None
        if status is LifecycleStatus.COMPLETED:
            latest = self.fetch_completion_records(row.id, limit=1)
            last_completion = latest[0] if latest else None
        return MilestoneInstance(
            id=row.id,
            client_process_id=row.cliente_proceso_id,
            template_id=row.hito_id,
            deadline_date=row.fecha_limite,
            deadline_time=row.hora_limite,
            status=status,
            status_changed_at=row.fecha_estado,
            type_tag=row.tipo,
            critical=bool(row.critico),
            mandatory=bool(row.obligatorio),
            enabled=bool(row.habilitado),
            client_id=cp.cliente_id if cp else None,
            process_id=cp.proceso_id if cp else None,
            process_name=cp.proceso.nombre if cp and cp.proceso else "",
            template_name=row.hito.nombre if row.hito else "",
            last_completion=last_completion,
        )


def _to_completion(row: ClienteProcesoHitoCumplimiento) -> CompletionRecord:
    return CompletionRecord(
        id=row.id,
        instance_id=row.cliente_proceso_hito_id,
        date=row.fecha,
        time=row.hora,
        observation=row.observacion,
        user=row.usuario,
        document_count=row.num_documentos or 0,
    )


def _apply_field(row: ClienteProcesoHito, key: str, value) -> None:
    if key == "fecha_limite":
        parsed = parse_date_input(value)
        if parsed is None:
            raise ValueError("fecha_limite cannot be null")
        row.fecha_limite = parsed
    elif key == "hora_limite":
        row.hora_limite = parse_time_input(value)
    elif key == "habilitado":
        row.habilitado = bool(value)
    else:
        raise ValueError(f"Field {key!r} is not updatable")
