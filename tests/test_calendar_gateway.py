"""Tests for CalendarApiGateway — the console REST backend store.

All HTTP goes through a MagicMock session; ``sleep`` is a no-op so the
retry backoff does not slow the suite down.
"""

from __future__ import annotations

from datetime import date, datetime, time
from unittest.mock import MagicMock

import pytest
import requests

from calendario.core.exceptions import NotFoundError, PersistenceError
from calendario.integrations.calendar_gateway import CalendarApiGateway, GatewayResult
from calendario.services.calendar_types import (
    ActingUser,
    AuditRecord,
    InstanceUpdate,
    LifecycleStatus,
    ReasonCode,
)

BASE = "https://backend.test/api"


# ── Helpers ─────────────────────────────────────────────────────────────────


def _response(status: int = 200, data=None) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.ok = 200 <= status < 300
    r.content = b"{}" if data is not None else b""
    r.json.return_value = data
    r.text = "" if data is None else str(data)
    return r


def _gateway(*responses) -> tuple[CalendarApiGateway, MagicMock]:
    session = MagicMock()
    session.request.side_effect = list(responses)
    sleeps = []
    gw = CalendarApiGateway(
        BASE + "/",
        token="tok-123",
        session=session,
        identity_provider=lambda: ActingUser("ana"),
        sleep=sleeps.append,
    )
    gw.sleeps = sleeps
    return gw, session


def _instance_json(**overrides) -> dict:
    item = {
        "id": 42,
        "cliente_proceso_id": 10,
        "hito_id": 7,
        "estado": "Nuevo",
        "fecha_estado": "2025-03-01T08:00:00Z",
        "fecha_limite": "2025-03-10",
        "hora_limite": "09:00:00",
        "tipo": "Fiscal",
        "critico": 1,
        "obligatorio": "0",
        "habilitado": 1,
        "hito_nombre": "Modelo 303",
    }
    item.update(overrides)
    return item


# ── Request dispatcher ──────────────────────────────────────────────────────


class TestRequest:
    def test_sends_bearer_and_timeout(self):
        gw, session = _gateway(_response(200, {"clienteProcesos": []}))
        gw.fetch_client_process_instances("C001")

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("GET", f"{BASE}/cliente-procesos/cliente/C001")
        assert kwargs["headers"]["Authorization"] == "Bearer tok-123"
        assert kwargs["timeout"] == 30

    def test_retries_5xx_then_succeeds(self):
        gw, session = _gateway(_response(503), _response(200, {"ok": True}))
        result = gw.request("GET", "/x")
        assert isinstance(result, GatewayResult)
        assert result.ok
        assert session.request.call_count == 2
        assert gw.sleeps == [1]

    def test_gives_up_after_max_retries(self):
        gw, session = _gateway(
            requests.ConnectionError("refused"), requests.Timeout(), _response(500),
        )
        result = gw.request("GET", "/x")
        assert not result.ok
        assert result.status_code == 500
        assert session.request.call_count == 3
        assert gw.sleeps == [1, 4]

    def test_4xx_not_retried(self):
        gw, session = _gateway(_response(400))
        result = gw.request("PUT", "/x", json_body={})
        assert result.status_code == 400
        assert session.request.call_count == 1


# ── Reads ───────────────────────────────────────────────────────────────────


class TestReads:
    def test_client_processes_fill_instance_context(self):
        gw, _ = _gateway(
            _response(200, {"clienteProcesos": [{
                "id": 10, "cliente_id": "C001", "proceso_id": 3, "anio": 2025, "mes": 3,
                "fecha_inicio": "2025-03-01", "proceso_nombre": "Gestión IVA",
            }]}),
            _response(200, [_instance_json()]),
        )
        cps = gw.fetch_client_process_instances("C001")
        instances = gw.fetch_milestone_instances([10])

        assert cps[0].period == "2025-03"
        inst = instances[0]
        assert inst.client_id == "C001"
        assert inst.process_name == "Gestión IVA"
        assert inst.deadline_time == time(9, 0)
        assert inst.status_changed_at == datetime(2025, 3, 1, 8, 0)
        assert inst.critical is True
        assert inst.mandatory is False

    def test_completed_instances_fetch_last_completion(self):
        gw, session = _gateway(
            _response(200, [_instance_json(estado="Finalizado")]),
            _response(200, {"cumplimientos": [{"id": 5, "fecha": "2025-03-10", "hora": "09:00"}]}),
        )
        inst = gw.fetch_milestone_instances([10])[0]

        assert inst.last_completion_at == datetime(2025, 3, 10, 9, 0)
        params = session.request.call_args.kwargs["params"]
        assert params == {"page": 1, "limit": 1, "sort_field": "fecha", "sort_direction": "desc"}

    def test_unknown_status_is_persistence_error(self):
        gw, _ = _gateway(_response(200, [_instance_json(estado="Cancelado")]))
        with pytest.raises(PersistenceError):
            gw.fetch_milestone_instances([10])

    def test_get_instance_404(self):
        gw, _ = _gateway(_response(404))
        with pytest.raises(NotFoundError):
            gw.get_milestone_instance(42)

    def test_audit_listing(self):
        gw, session = _gateway(_response(200, {"auditoria_calendarios": [{"id": 1}], "total": 7}))
        rows, total = gw.list_audit_records("C001", date(2025, 3, 1), None, page=2, limit=5)
        assert rows == [{"id": 1}]
        assert total == 7
        params = session.request.call_args.kwargs["params"]
        assert params["fecha_desde"] == "2025-03-01"
        assert "fecha_hasta" not in params


# ── Writes ──────────────────────────────────────────────────────────────────


class TestWrites:
    def test_update_payload(self):
        gw, session = _gateway(_response(200, _instance_json(fecha_limite="2025-03-14")))
        update = InstanceUpdate(
            status=LifecycleStatus.OPEN,
            status_changed_at=datetime(2025, 3, 5, 12, 0),
            fields={"fecha_limite": date(2025, 3, 14), "hora_limite": None},
        )
        result = gw.persist_milestone_instance_update(42, update)

        assert session.request.call_args.kwargs["json"] == {
            "estado": "Nuevo",
            "fecha_estado": "2025-03-05T12:00:00",
            "fecha_limite": "2025-03-14",
            "hora_limite": None,
        }
        assert result.deadline_date == date(2025, 3, 14)

    def test_enable_flag_sent_as_int(self):
        gw, session = _gateway(_response(200, {}))
        update = InstanceUpdate(status=LifecycleStatus.OPEN, status_changed_at=None,
                                fields={"habilitado": False})
        assert gw.persist_milestone_instance_update(42, update) is None
        assert session.request.call_args.kwargs["json"]["habilitado"] == 0

    def test_update_failure(self):
        gw, _ = _gateway(_response(500), _response(500), _response(500))
        update = InstanceUpdate(status=LifecycleStatus.OPEN, status_changed_at=None)
        with pytest.raises(PersistenceError):
            gw.persist_milestone_instance_update(42, update)

    def test_disable_command(self):
        gw, session = _gateway(_response(200, {}))
        gw.disable_instances_by_template_from_date(7, date(2025, 6, 1), "C001")

        method, url = session.request.call_args.args
        assert method == "PUT"
        assert url == f"{BASE}/cliente-proceso-hitos/hito/7/deshabilitar-desde"
        assert session.request.call_args.kwargs["params"] == {
            "fecha_desde": "2025-06-01", "cliente_id": "C001",
        }

    def test_create_audit_record(self):
        gw, session = _gateway(_response(201, {"id": 99}))
        record = AuditRecord(
            client_id="C001", instance_id=42, template_id=7, field="fecha_limite",
            previous_value="2025-03-10", new_value="2025-03-14", username="ana",
            reason=ReasonCode.CONFIGURATION, modified_at=datetime(2025, 3, 5, 12, 0),
        )
        saved = gw.create_audit_record(record)

        assert saved.id == 99
        assert session.request.call_args.kwargs["json"]["motivo"] == 1

    def test_identity(self):
        gw, _ = _gateway()
        assert gw.get_acting_user_identity().username == "ana"
