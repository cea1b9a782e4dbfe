"""
Shared pytest fixtures for the client milestone calendar test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + table recreate (autouse)
    - client: Flask test client (function-scoped)
    - seeded: Client "C001" with two periods of milestones in the database
"""

from datetime import date, datetime, time

import pytest

from calendario import create_app
from calendario.models import db as _db
from calendario.models.calendar import (
    ClienteProceso,
    ClienteProcesoHito,
    ClienteProcesoHitoCumplimiento,
    Hito,
    Proceso,
)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config.pop("CALENDAR_STORE_FACTORY", None)
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    app.config.pop("CALENDAR_STORE_FACTORY", None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def seeded():
    """Client C001 with processes in 2025-03 and 2025-04, client C002 with
    one process in 2025-03.

    Returns a dict of the created ids:
        cp_march, cp_april, cp_other        client-process ids
        iva, cierre                         milestone template ids
        open_march, done_march, open_april  C001 instance ids
        other_iva                           C002 instance of the IVA template
    """
    iva_proc = Proceso(nombre="Gestión IVA")
    nominas = Proceso(nombre="Nóminas")
    iva = Hito(nombre="Presentación modelo 303")
    cierre = Hito(nombre="Cierre contable")
    _db.session.add_all([iva_proc, nominas, iva, cierre])
    _db.session.flush()

    cp_march = ClienteProceso(cliente_id="C001", proceso_id=iva_proc.id, anio=2025, mes=3)
    cp_april = ClienteProceso(cliente_id="C001", proceso_id=nominas.id, anio=2025, mes=4)
    cp_other = ClienteProceso(cliente_id="C002", proceso_id=iva_proc.id, anio=2025, mes=3)
    _db.session.add_all([cp_march, cp_april, cp_other])
    _db.session.flush()

    open_march = ClienteProcesoHito(
        cliente_proceso_id=cp_march.id, hito_id=iva.id, estado="Nuevo",
        fecha_limite=date(2025, 3, 20), hora_limite=time(14, 0), tipo="Fiscal",
    )
    done_march = ClienteProcesoHito(
        cliente_proceso_id=cp_march.id, hito_id=cierre.id, estado="Finalizado",
        fecha_estado=datetime(2025, 3, 10, 8, 0), fecha_limite=date(2025, 3, 10),
        tipo="Contable",
    )
    open_april = ClienteProcesoHito(
        cliente_proceso_id=cp_april.id, hito_id=iva.id, estado="Nuevo",
        fecha_limite=date(2025, 4, 20), tipo="Fiscal",
    )
    other_iva = ClienteProcesoHito(
        cliente_proceso_id=cp_other.id, hito_id=iva.id, estado="Nuevo",
        fecha_limite=date(2025, 4, 25), tipo="Fiscal",
    )
    _db.session.add_all([open_march, done_march, open_april, other_iva])
    _db.session.flush()

    _db.session.add(ClienteProcesoHitoCumplimiento(
        cliente_proceso_hito_id=done_march.id, fecha=date(2025, 3, 11),
        hora=time(9, 30), usuario="ana", observacion="Presentado tarde",
    ))
    _db.session.commit()
    return {
        "cp_march": cp_march.id,
        "cp_april": cp_april.id,
        "cp_other": cp_other.id,
        "iva": iva.id,
        "cierre": cierre.id,
        "open_march": open_march.id,
        "done_march": done_march.id,
        "open_april": open_april.id,
        "other_iva": other_iva.id,
    }
