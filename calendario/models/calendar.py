"""
Client Milestone Calendar
Calendar domain models.

Models:
    - Hito: milestone template (read-only for the calendar engine)
    - Proceso: process template
    - ProcesoHito: process ↔ milestone template link
    - ClienteProceso: one (client, process, period) instance
    - ClienteProcesoHito: one datable milestone instance
    - ClienteProcesoHitoCumplimiento: completion event of an instance

Table and column names follow the console's backend schema so the same
database can be shared with it.
"""

from datetime import datetime, timezone

from calendario.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PERIODICITY_UNITS = {"dia", "semana", "mes", "anio"}
LIFECYCLE_STATUSES = {"Nuevo", "Pendiente", "Finalizado"}


class Hito(db.Model):
    """Milestone template: what has to be done and how often."""

    __tablename__ = "hitos"

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(255), nullable=False)
    frecuencia = db.Column(db.Integer, default=1)
    temporalidad = db.Column(db.String(20), default="mes",
                             comment="dia | semana | mes | anio")
    fecha_inicio = db.Column(db.Date, nullable=True)
    fecha_fin = db.Column(db.Date, nullable=True)
    descripcion = db.Column(db.Text, default="")
    obligatorio = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "frecuencia": self.frecuencia,
            "temporalidad": self.temporalidad,
            "fecha_inicio": self.fecha_inicio.isoformat() if self.fecha_inicio else None,
            "fecha_fin": self.fecha_fin.isoformat() if self.fecha_fin else None,
            "descripcion": self.descripcion,
            "obligatorio": self.obligatorio,
        }

    def __repr__(self):
        return f"<Hito {self.id}: {self.nombre}>"


class Proceso(db.Model):
    """Process template grouping several milestone templates."""

    __tablename__ = "procesos"

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(255), nullable=False)
    temporalidad = db.Column(db.String(20), default="mes")
    frecuencia = db.Column(db.Integer, default=1)
    habilitado = db.Column(db.Boolean, default=True)

    hitos = db.relationship("ProcesoHito", backref="proceso", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "temporalidad": self.temporalidad,
            "frecuencia": self.frecuencia,
            "habilitado": self.habilitado,
        }

    def __repr__(self):
        return f"<Proceso {self.id}: {self.nombre}>"


class ProcesoHito(db.Model):
    """Link between a process template and a milestone template."""

    __tablename__ = "proceso_hitos"
    __table_args__ = (
        db.UniqueConstraint("proceso_id", "hito_id", name="uq_proceso_hito"),
    )

    id = db.Column(db.Integer, primary_key=True)
    proceso_id = db.Column(db.Integer, db.ForeignKey("procesos.id"), nullable=False, index=True)
    hito_id = db.Column(db.Integer, db.ForeignKey("hitos.id"), nullable=False, index=True)

    def to_dict(self):
        return {"id": self.id, "proceso_id": self.proceso_id, "hito_id": self.hito_id}


class ClienteProceso(db.Model):
    """A process materialised for one client and one period."""

    __tablename__ = "cliente_procesos"
    __table_args__ = (
        db.Index("idx_cliente_proceso_periodo", "cliente_id", "anio", "mes"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cliente_id = db.Column(db.String(50), nullable=False, index=True)
    proceso_id = db.Column(db.Integer, db.ForeignKey("procesos.id"), nullable=False)
    anio = db.Column(db.Integer, nullable=True)
    mes = db.Column(db.Integer, nullable=True)
    fecha_inicio = db.Column(db.Date, nullable=True)
    habilitado = db.Column(db.Boolean, default=True)

    proceso = db.relationship("Proceso")
    hitos = db.relationship("ClienteProcesoHito", backref="cliente_proceso", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "cliente_id": self.cliente_id,
            "proceso_id": self.proceso_id,
            "proceso_nombre": self.proceso.nombre if self.proceso else None,
            "anio": self.anio,
            "mes": self.mes,
            "fecha_inicio": self.fecha_inicio.isoformat() if self.fecha_inicio else None,
            "habilitado": self.habilitado,
        }

    def __repr__(self):
        return f"<ClienteProceso {self.id}: {self.cliente_id} {self.anio}-{self.mes}>"


class ClienteProcesoHito(db.Model):
    """
    Milestone instance: the row the calendar classifies, edits and disables.

    ``fecha_limite`` is never null.  ``hora_limite`` is optional; a missing
    value (or the 00:00 placeholder) means end of day.  Rows are disabled,
    never deleted.
    """

    __tablename__ = "cliente_proceso_hitos"
    __table_args__ = (
        db.Index("idx_cph_hito_fecha", "hito_id", "fecha_limite"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cliente_proceso_id = db.Column(
        db.Integer, db.ForeignKey("cliente_procesos.id"), nullable=False, index=True,
    )
    hito_id = db.Column(db.Integer, db.ForeignKey("hitos.id"), nullable=False, index=True)
    estado = db.Column(db.String(20), nullable=False, default="Nuevo",
                       comment="Nuevo | Finalizado")
    fecha_estado = db.Column(db.DateTime, nullable=True)
    fecha_limite = db.Column(db.Date, nullable=False)
    hora_limite = db.Column(db.Time, nullable=True)
    tipo = db.Column(db.String(50), nullable=True)
    critico = db.Column(db.Boolean, default=False)
    obligatorio = db.Column(db.Boolean, default=False)
    habilitado = db.Column(db.Boolean, nullable=False, default=True)

    hito = db.relationship("Hito")
    cumplimientos = db.relationship(
        "ClienteProcesoHitoCumplimiento", backref="cliente_proceso_hito", lazy="dynamic",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "cliente_proceso_id": self.cliente_proceso_id,
            "hito_id": self.hito_id,
            "estado": self.estado,
            "fecha_estado": self.fecha_estado.isoformat() if self.fecha_estado else None,
            "fecha_limite": self.fecha_limite.isoformat() if self.fecha_limite else None,
            "hora_limite": self.hora_limite.strftime("%H:%M") if self.hora_limite else None,
            "tipo": self.tipo,
            "critico": self.critico,
            "obligatorio": self.obligatorio,
            "habilitado": self.habilitado,
        }

    def __repr__(self):
        return f"<ClienteProcesoHito {self.id}: hito={self.hito_id} {self.fecha_limite}>"


class ClienteProcesoHitoCumplimiento(db.Model):
    """Completion event.  The most recent one decides on-time vs late."""

    __tablename__ = "cliente_proceso_hito_cumplimientos"

    id = db.Column(db.Integer, primary_key=True)
    cliente_proceso_hito_id = db.Column(
        db.Integer, db.ForeignKey("cliente_proceso_hitos.id"), nullable=False, index=True,
    )
    fecha = db.Column(db.Date, nullable=False)
    hora = db.Column(db.Time, nullable=True)
    observacion = db.Column(db.Text, nullable=True)
    usuario = db.Column(db.String(150), nullable=True)
    num_documentos = db.Column(db.Integer, default=0,
                               comment="Evidence files attached in document storage")
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "cliente_proceso_hito_id": self.cliente_proceso_hito_id,
            "fecha": self.fecha.isoformat() if self.fecha else None,
            "hora": self.hora.strftime("%H:%M:%S") if self.hora else None,
            "observacion": self.observacion,
            "usuario": self.usuario,
            "num_documentos": self.num_documentos,
        }

    def __repr__(self):
        return f"<Cumplimiento {self.id}: cph={self.cliente_proceso_hito_id} {self.fecha}>"
