"""
Console REST backend gateway — CalendarStore over HTTP.

All outbound HTTP calls to the console backend go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

  - Bearer token injected on every call (the caller's own token is passed
    through by the blueprint)
  - Retry: max 2 extra attempts on network errors and 5xx, backoff 1 s → 4 s
  - Timeout: CALENDAR_API_TIMEOUT (default 30 s)
  - Structured GatewayResult per call; store methods turn failures into
    PersistenceError / NotFoundError

Testability: pass a mock `session` (and a no-op `sleep`) in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime
from typing import Any

import requests

from calendario.core.exceptions import NotFoundError, PersistenceError
from calendario.integrations.calendar_store import CalendarStore
from calendario.services.calendar_types import (
    AuditRecord,
    ClientProcessInstance,
    CompletionRecord,
    LifecycleStatus,
    MilestoneInstance,
)
from calendario.utils.helpers import parse_date, parse_time_input

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

_DEFAULT_TIMEOUT = 30


class GatewayResult:
    """Structured return value from CalendarApiGateway.request().

    Attributes:
        ok:           True if the call succeeded (HTTP 2xx + no exception).
        status_code:  HTTP status code (None if network-level failure).
        data:         Parsed JSON response body (dict or list), else None.
        error:        Human-readable error message or None.
        duration_ms:  Round-trip latency of the last attempt.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code}>"


class CalendarApiGateway(CalendarStore):
    """Console REST backend gateway.

    Usage:
        gateway = CalendarApiGateway(app.config["CALENDAR_API_URL"], token=bearer)
        instances = gateway.fetch_milestone_instances([10, 11])
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
        identity_provider=None,
        sleep=time.sleep,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self._token = token
        self._timeout = timeout
        self._session: requests.Session | None = session
        self._sleep = sleep
        if identity_provider is None:
            from calendario.auth import get_acting_user_identity
            identity_provider = get_acting_user_identity
        self._identity_provider = identity_provider
        # client-process id → ClientProcessInstance, filled by fetch_client_process_instances
        self._client_processes: dict[int, ClientProcessInstance] = {}

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
    ) -> GatewayResult:
        """Execute a request against the backend with retries.

        4xx responses are returned immediately; network errors and 5xx are
        retried up to _RETRY_MAX times.  Never raises.
        """
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self._timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params

        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0

        for attempt in range(_RETRY_MAX + 1):
            try:
                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    return GatewayResult(False, resp.status_code, None, last_error, duration_ms)
                logger.warning(
                    "Calendar API request failed attempt=%d/%d status=%d %s %s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, method, path,
                )

            except requests.Timeout:
                last_error = f"Request timed out after {self._timeout}s"
                last_status = None
                logger.warning(
                    "Calendar API request timed out attempt=%d/%d %s %s",
                    attempt + 1, _RETRY_MAX + 1, method, path,
                )

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                last_status = None
                logger.warning(
                    "Calendar API network error attempt=%d/%d %s %s error=%s",
                    attempt + 1, _RETRY_MAX + 1, method, path, last_error,
                )

            if attempt < _RETRY_MAX:
                self._sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        return GatewayResult(False, last_status, None, last_error, duration_ms)

    def _call(self, resource: str, resource_id, method: str, path: str, **kwargs):
        result = self.request(method, path, **kwargs)
        if not result.ok:
            raise PersistenceError(resource, resource_id, result.error)
        return result.data

    # ── Reads ────────────────────────────────────────────────────────────────

    def fetch_client_process_instances(self, client_id):
        data = self._call("ClienteProceso", client_id, "GET", f"/cliente-procesos/cliente/{client_id}")
        out = []
        for item in (data or {}).get("clienteProcesos", []):
            cp = ClientProcessInstance(
                id=int(item["id"]),
                client_id=str(item.get("cliente_id", client_id)),
                process_id=int(item["proceso_id"]),
                year=item.get("anio"),
                month=item.get("mes"),
                start_date=parse_date(item.get("fecha_inicio")),
                process_name=item.get("proceso_nombre") or "",
            )
            self._client_processes[cp.id] = cp
            out.append(cp)
        return out

    def fetch_milestone_instances(self, client_process_ids):
        out = []
        for cp_id in client_process_ids:
            data = self._call(
                "ClienteProcesoHito", None, "GET", f"/cliente-proceso-hitos/cliente-proceso/{cp_id}",
            )
            try:
                instances = [self._to_instance(item) for item in data or []]
            except (KeyError, TypeError, ValueError) as exc:
                raise PersistenceError("ClienteProcesoHito", None, f"bad response: {exc}") from exc
            out.extend(self._with_last_completion(inst) for inst in instances)
        return out

    def get_milestone_instance(self, instance_id):
        result = self.request("GET", f"/cliente-proceso-hitos/{instance_id}")
        if result.status_code == 404:
            raise NotFoundError("ClienteProcesoHito", instance_id)
        if not result.ok:
            raise PersistenceError("ClienteProcesoHito", instance_id, result.error)
        return self._with_last_completion(self._to_instance(result.data))

    def fetch_completion_records(self, instance_id, limit=1, sort_field="fecha", sort_dir="desc"):
        data = self._call(
            "ClienteProcesoHitoCumplimiento", instance_id, "GET",
            f"/cliente-proceso-hito-cumplimientos/cliente-proceso-hito/{instance_id}",
            params={"page": 1, "limit": limit, "sort_field": sort_field, "sort_direction": sort_dir},
        )
        out = []
        for item in (data or {}).get("cumplimientos", []):
            completed_on = parse_date(item.get("fecha"))
            if completed_on is None:
                continue
            try:
                completed_at = parse_time_input(item.get("hora"))
            except ValueError:
                completed_at = None
            out.append(CompletionRecord(
                id=item.get("id"),
                instance_id=instance_id,
                date=completed_on,
                time=completed_at,
                observation=item.get("observacion"),
                user=item.get("usuario"),
                document_count=item.get("num_documentos") or 0,
            ))
        return out

    def list_audit_records(self, client_id, date_from=None, date_to=None, page=1, limit=20):
        params = {
            "page": page,
            "limit": limit,
            "sort_field": "fecha_modificacion",
            "sort_direction": "desc",
        }
        if date_from:
            params["fecha_desde"] = date_from.isoformat()
        if date_to:
            params["fecha_hasta"] = date_to.isoformat()
        data = self._call(
            "AuditoriaCalendario", client_id, "GET",
            f"/auditoria-calendarios/cliente/{client_id}", params=params,
        ) or {}
        return data.get("auditoria_calendarios", []), int(data.get("total", 0))

    # ── Writes ───────────────────────────────────────────────────────────────

    def persist_milestone_instance_update(self, instance_id, update):
        data = self._call(
            "ClienteProcesoHito", instance_id, "PUT", f"/cliente-proceso-hitos/{instance_id}",
            json_body=update.to_payload(),
        )
        if not data:
            return None
        try:
            return self._to_instance(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError("ClienteProcesoHito", instance_id, f"bad response: {exc}") from exc

    def disable_instances_by_template_from_date(self, template_id, cutoff, client_id):
        self._call(
            "ClienteProcesoHito", f"hito={template_id}", "PUT",
            f"/cliente-proceso-hitos/hito/{template_id}/deshabilitar-desde",
            params={"fecha_desde": cutoff.isoformat(), "cliente_id": client_id},
        )

    def create_audit_record(self, record: AuditRecord) -> AuditRecord:
        data = self._call(
            "AuditoriaCalendario", record.instance_id, "POST", "/auditoria-calendarios",
            json_body=record.to_payload(),
        ) or {}
        if "id" not in data:
            return record
        return replace(record, id=data["id"])

    def get_acting_user_identity(self):
        return self._identity_provider()

    # ── Mapping ──────────────────────────────────────────────────────────────

    def _with_last_completion(self, instance: MilestoneInstance) -> MilestoneInstance:
        if instance.status is LifecycleStatus.COMPLETED:
            latest = self.fetch_completion_records(instance.id, limit=1)
            instance.last_completion = latest[0] if latest else None
        return instance

    def _to_instance(self, item: dict) -> MilestoneInstance:
        cp = self._client_processes.get(int(item["cliente_proceso_id"]))
        fecha_estado = item.get("fecha_estado")
        return MilestoneInstance(
            id=int(item["id"]),
            client_process_id=int(item["cliente_proceso_id"]),
            template_id=int(item["hito_id"]),
            deadline_date=parse_date(item.get("fecha_limite")),
            deadline_time=_lenient_time(item.get("hora_limite")),
            status=LifecycleStatus.from_raw(item.get("estado")),
            status_changed_at=_parse_datetime(fecha_estado),
            type_tag=item.get("tipo"),
            critical=_as_bool(item.get("critico")),
            mandatory=_as_bool(item.get("obligatorio")),
            enabled=_as_bool(item.get("habilitado", True)),
            client_id=item.get("cliente_id") or (cp.client_id if cp else None),
            process_id=item.get("proceso_id") or (cp.process_id if cp else None),
            process_name=item.get("proceso_nombre") or (cp.process_name if cp else ""),
            template_name=item.get("hito_nombre") or item.get("nombre_hito") or "",
        )


def _as_bool(value) -> bool:
    """Backend sends flags as 1/0, "1"/"0" or true/false."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return bool(value)


def _lenient_time(value):
    try:
        return parse_time_input(value)
    except ValueError:
        logger.warning("Ignoring unparseable hora_limite %r", value)
        return None


def _parse_datetime(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None
