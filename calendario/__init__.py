"""
Client Milestone Calendar
Flask Application Factory.

Usage:
    from calendario import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
from datetime import time

import click
from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate

from calendario.config import config
from calendario.models import db
from calendario.middleware.logging_config import configure_logging
from calendario.middleware.timing import init_request_timing
from calendario.utils.helpers import utc_today

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from calendario.models import calendar as _calendar_models  # noqa: F401
    from calendario.models import audit as _audit_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from calendario.blueprints.calendar_bp import calendar_bp

    app.register_blueprint(calendar_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    @click.option("--client", "client_id", default="C001", show_default=True)
    def seed_demo_cmd(client_id):
        """Seed one process with two milestones for the current month."""
        count = seed_demo_calendar(client_id, utc_today())
        logger.info("Seeded %s milestone instance(s) for client %s.", count, client_id)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Client Milestone Calendar"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app


def seed_demo_calendar(client_id, today):
    """Create a demo process for *client_id* in *today*'s month.

    Returns the number of milestone instances created.
    """
    from calendario.models.calendar import (
        ClienteProceso,
        ClienteProcesoHito,
        Hito,
        Proceso,
        ProcesoHito,
    )

    proceso = Proceso(nombre="Gestión IVA")
    modelo = Hito(nombre="Presentación modelo 303", obligatorio=True)
    cierre = Hito(nombre="Cierre contable")
    db.session.add_all([proceso, modelo, cierre])
    db.session.flush()
    db.session.add_all([
        ProcesoHito(proceso_id=proceso.id, hito_id=modelo.id),
        ProcesoHito(proceso_id=proceso.id, hito_id=cierre.id),
    ])
    cp = ClienteProceso(
        cliente_id=client_id, proceso_id=proceso.id,
        anio=today.year, mes=today.month, fecha_inicio=today.replace(day=1),
    )
    db.session.add(cp)
    db.session.flush()
    instances = [
        ClienteProcesoHito(
            cliente_proceso_id=cp.id, hito_id=modelo.id,
            fecha_limite=today.replace(day=20), hora_limite=time(14, 0),
            tipo="Fiscal", obligatorio=True,
        ),
        ClienteProcesoHito(
            cliente_proceso_id=cp.id, hito_id=cierre.id,
            fecha_limite=today.replace(day=28), tipo="Contable",
        ),
    ]
    db.session.add_all(instances)
    db.session.commit()
    return len(instances)
