"""
Client Calendar Blueprint.

HTTP surface of the milestone calendar engine for one client.

Endpoints:
    GET    /api/v1/calendar/reason-codes
    GET    /api/v1/calendar/clients/<client_id>/periods
    GET    /api/v1/calendar/clients/<client_id>/milestones
           Query: periodo, view=calendar|table, q, hito_ids, procesos,
                  estados, tipos, fecha_desde, fecha_hasta,
                  sort, direction, page, page_size
    POST   /api/v1/calendar/clients/<client_id>/milestones/commit
           Body: { "periodo", "cambios": [{"id", "fecha_limite", "hora_limite"}],
                   "motivo", "observaciones" }
    POST   /api/v1/calendar/clients/<client_id>/milestones/<id>/edit
           Body: { "periodo", "fecha_limite", "hora_limite", "motivo", "observaciones" }
    POST   /api/v1/calendar/clients/<client_id>/milestones/disable
           Body: { "periodo", "modo": "hitos|procesos", "ids": [...], "fecha_desde" }
    PUT    /api/v1/calendar/clients/<client_id>/milestones/<id>/enabled
           Body: { "habilitado": true|false }
    GET    /api/v1/calendar/milestones/<id>/completions
    GET    /api/v1/calendar/clients/<client_id>/audit
           Query: fecha_desde, fecha_hasta, page, limit

Batch responses: 200 for success / noop, 207 when some items failed,
502 when none was persisted.  The body always carries the outcome.

Layer contract:
    - Blueprint: parse + validate input, build the session, map outcomes.
    - NO db.session calls here — persistence goes through the CalendarStore.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from calendario.auth import bearer_token
from calendario.blueprints import page_args
from calendario.core.exceptions import NotFoundError, PersistenceError, ValidationError
from calendario.integrations.calendar_gateway import CalendarApiGateway
from calendario.integrations.calendar_store import SqlCalendarStore, safe_fetch_completions
from calendario.services.calendar_session import CalendarSession, default_period
from calendario.services.calendar_types import DisplayStatus, EditableField, ReasonCode
from calendario.services.calendar_view import CalendarFilter, SortDirection, SortKey, SortState
from calendario.utils.errors import E, api_error
from calendario.utils.helpers import parse_date_input, parse_id_list, parse_time_input, utc_today

logger = logging.getLogger(__name__)

calendar_bp = Blueprint("calendar", __name__, url_prefix="/api/v1/calendar")


# ── Helpers ────────────────────────────────────────────────────────────────────


def _store():
    """CalendarStore for this request.

    ``CALENDAR_STORE_FACTORY`` overrides everything (tests); a configured
    ``CALENDAR_API_URL`` selects the REST gateway; otherwise SQLAlchemy.
    """
    factory = current_app.config.get("CALENDAR_STORE_FACTORY")
    if factory is not None:
        return factory()
    api_url = current_app.config.get("CALENDAR_API_URL")
    if api_url:
        return CalendarApiGateway(
            api_url,
            token=bearer_token(),
            timeout=current_app.config.get("CALENDAR_API_TIMEOUT", 30),
        )
    return SqlCalendarStore()


def _session(client_id: str, period_key: str | None = None, *, calendar_mode: bool = True):
    session = CalendarSession(
        _store(),
        client_id,
        today=utc_today(),
        page_size=current_app.config.get("CALENDAR_PAGE_SIZE", 10),
        calendar_mode=calendar_mode,
    )
    session.open(period_key or None)
    return session


def _outcome_response(outcome, **extra):
    body = {"outcome": outcome.to_dict(), **extra}
    if outcome.status == "partial":
        return api_error(E.BATCH_PARTIAL, outcome.message, details=body)
    if outcome.status == "failure":
        return api_error(E.BATCH_FAILED, outcome.message, details=body)
    return jsonify(body), 200


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _parse_filter(args) -> CalendarFilter:
    return CalendarFilter(
        text=(args.get("q") or "").strip(),
        template_ids=frozenset(parse_id_list(args.get("hito_ids"))),
        process_names=frozenset(p.strip() for p in (args.get("procesos") or "").split("|") if p.strip()),
        statuses=DisplayStatus.parse_many(args.get("estados")),
        types=frozenset(t.strip() for t in (args.get("tipos") or "").split(",") if t.strip()),
        date_from=parse_date_input(args.get("fecha_desde")),
        date_to=parse_date_input(args.get("fecha_hasta")),
    )


# ── Error mapping ──────────────────────────────────────────────────────────────


@calendar_bp.errorhandler(ValidationError)
def _handle_validation(exc):
    code = E.VALIDATION_REQUIRED if "required" in exc.details.values() else E.VALIDATION_INVALID
    return api_error(code, str(exc), details=exc.details)


@calendar_bp.errorhandler(NotFoundError)
def _handle_not_found(exc):
    return api_error(E.NOT_FOUND, str(exc))


@calendar_bp.errorhandler(PersistenceError)
def _handle_persistence(exc):
    logger.error("Calendar store failure: %s", exc)
    return api_error(E.UPSTREAM, str(exc))


@calendar_bp.errorhandler(ValueError)
def _handle_value_error(exc):
    return api_error(E.VALIDATION_INVALID, str(exc))


# ── Reference data ─────────────────────────────────────────────────────────────


@calendar_bp.route("/reason-codes", methods=["GET"])
def list_reason_codes():
    return jsonify([{"id": int(code), "label": code.label} for code in ReasonCode]), 200


# ── Periods & milestones ───────────────────────────────────────────────────────


@calendar_bp.route("/clients/<client_id>/periods", methods=["GET"])
def list_periods(client_id):
    session = CalendarSession(_store(), client_id, today=utc_today())
    periods = session.load_periods()
    default = default_period(periods, session.today)
    return jsonify({
        "cliente_id": client_id,
        "periodos": [p.to_dict() for p in periods],
        "periodo_defecto": default.key if default else None,
    }), 200


@calendar_bp.route("/clients/<client_id>/milestones", methods=["GET"])
def list_milestones(client_id):
    """Visible page of the period's milestones, with display status."""
    args = request.args
    view_mode = args.get("view", "calendar")
    if view_mode not in ("calendar", "table"):
        return api_error(E.VALIDATION_INVALID, "view must be 'calendar' or 'table'")

    criteria = _parse_filter(args)
    sort_key = SortKey(args.get("sort", SortKey.DEADLINE_DATE.value))
    direction = SortDirection(args.get("direction", SortDirection.ASC.value))

    session = _session(client_id, args.get("periodo"), calendar_mode=view_mode == "calendar")
    view = session.view
    page_size = args.get("page_size", type=int)
    if page_size:
        view.page_size = min(max(page_size, 1), 200)
    view.set_filter(criteria)
    view.set_sort(SortState(sort_key, direction))
    view.set_page(args.get("page", 1, type=int))

    page = view.current_page()
    return jsonify({
        "cliente_id": client_id,
        "periodo": session.selected_period.key if session.selected_period else None,
        "items": [view.row_dict(instance, status) for instance, status in page.items],
        "page": page.page,
        "page_size": page.page_size,
        "total": page.total,
        "total_pages": page.total_pages,
        "sort": {"key": view.sort.key.value, "direction": view.sort.direction.value},
        "counts": view.status_counts(),
        "opciones": view.filter_options(),
    }), 200


# ── Edits ──────────────────────────────────────────────────────────────────────


@calendar_bp.route("/clients/<client_id>/milestones/commit", methods=["POST"])
def commit_changes(client_id):
    """Stage the submitted deadline edits and commit them as one batch."""
    data = _json_body()
    changes = data.get("cambios") or []
    if not isinstance(changes, list):
        return api_error(E.VALIDATION_INVALID, "cambios must be a list")

    session = _session(client_id, data.get("periodo"), calendar_mode=False)
    for change in changes:
        if not isinstance(change, dict) or "id" not in change:
            return api_error(E.VALIDATION_INVALID, "each change needs an id")
        instance_id = int(change["id"])
        if EditableField.DEADLINE_DATE.value in change:
            session.tracker.stage_edit(
                instance_id, EditableField.DEADLINE_DATE,
                parse_date_input(change[EditableField.DEADLINE_DATE.value]),
            )
        if EditableField.DEADLINE_TIME.value in change:
            session.tracker.stage_edit(
                instance_id, EditableField.DEADLINE_TIME,
                parse_time_input(change[EditableField.DEADLINE_TIME.value]),
            )

    summary = session.change_summary()
    outcome = session.commit(data.get("motivo"), data.get("observaciones"))
    return _outcome_response(outcome, resumen=summary)


@calendar_bp.route("/clients/<client_id>/milestones/<int:instance_id>/edit", methods=["POST"])
def edit_milestone(client_id, instance_id):
    """Save one instance from the edit dialog (both fields at once)."""
    data = _json_body()
    session = _session(client_id, data.get("periodo"), calendar_mode=False)
    outcome, notice = session.edit_instance(
        instance_id,
        parse_date_input(data.get("fecha_limite")),
        parse_time_input(data.get("hora_limite")),
        data.get("motivo"),
        data.get("observaciones"),
    )
    return _outcome_response(outcome, aviso=notice)


# ── Enable / disable ───────────────────────────────────────────────────────────


@calendar_bp.route("/clients/<client_id>/milestones/disable", methods=["POST"])
def disable_milestones(client_id):
    """Cascading disable from a cutoff date, by template or by process."""
    data = _json_body()
    cutoff = parse_date_input(data.get("fecha_desde"))
    if cutoff is None:
        return api_error(E.VALIDATION_REQUIRED, "fecha_desde is required")
    ids = parse_id_list(data.get("ids"))
    session = _session(client_id, data.get("periodo"), calendar_mode=False)
    outcome = session.disable(data.get("modo", "hitos"), ids, cutoff)
    return _outcome_response(outcome)


@calendar_bp.route("/clients/<client_id>/milestones/<int:instance_id>/enabled", methods=["PUT"])
def set_milestone_enabled(client_id, instance_id):
    data = _json_body()
    if "habilitado" not in data:
        return api_error(E.VALIDATION_REQUIRED, "habilitado is required")
    session = CalendarSession(_store(), client_id, today=utc_today())
    updated = session.set_enabled(instance_id, data["habilitado"])
    return jsonify(updated.to_dict()), 200


# ── History ────────────────────────────────────────────────────────────────────


@calendar_bp.route("/milestones/<int:instance_id>/completions", methods=["GET"])
def list_completions(instance_id):
    _, limit = page_args(default_limit=20)
    records = safe_fetch_completions(_store(), instance_id, limit=limit)
    return jsonify({
        "cliente_proceso_hito_id": instance_id,
        "cumplimientos": [r.to_dict() for r in records],
        "total": len(records),
    }), 200


@calendar_bp.route("/clients/<client_id>/audit", methods=["GET"])
def list_audit(client_id):
    """Audit trail of a client, newest first."""
    date_from = parse_date_input(request.args.get("fecha_desde"))
    date_to = parse_date_input(request.args.get("fecha_hasta"))
    if date_from and date_to and date_from > date_to:
        return api_error(E.VALIDATION_INVALID, "fecha_desde must not be after fecha_hasta")
    page, limit = page_args(default_limit=20)
    rows, total = _store().list_audit_records(client_id, date_from, date_to, page=page, limit=limit)
    return jsonify({
        "cliente_id": client_id,
        "auditoria_calendarios": rows,
        "total": total,
        "page": page,
        "limit": limit,
    }), 200
