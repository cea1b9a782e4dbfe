"""
Client Milestone Calendar
Calendar audit model.

Models:
    - AuditoriaCalendario: immutable, append-only trail of deadline edits.
"""

from datetime import datetime

from calendario.models import db


class AuditoriaCalendario(db.Model):
    """
    Immutable audit trail for calendar edits.

    One row per changed field of a milestone instance.  ``hito_completo``
    rows record an instance saved without any field difference.  Process
    and milestone names are denormalised so the trail survives template
    renames.
    """

    __tablename__ = "auditoria_calendarios"
    __table_args__ = (
        db.Index("idx_auditcal_cliente", "cliente_id"),
        db.Index("idx_auditcal_cph", "cliente_proceso_hito_id"),
        db.Index("idx_auditcal_fecha", "fecha_modificacion"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cliente_id = db.Column(db.String(50), nullable=True)
    hito_id = db.Column(db.Integer, nullable=False,
                        comment="Milestone template id")
    cliente_proceso_hito_id = db.Column(db.Integer, nullable=True)

    campo_modificado = db.Column(db.String(50), nullable=False,
                                 comment="fecha_limite | hora_limite | hito_completo")
    valor_anterior = db.Column(db.String(255), nullable=True)
    valor_nuevo = db.Column(db.String(255), nullable=True)
    observaciones = db.Column(db.Text, nullable=True)
    motivo = db.Column(db.Integer, nullable=False,
                       comment="1 Configuración | 2 Atisa | 3 cliente | 4 tercero")

    usuario = db.Column(db.String(150), nullable=False, default="usuario")
    codSubDepar = db.Column(db.String(50), nullable=True)

    proceso_nombre = db.Column(db.String(255), default="")
    hito_nombre = db.Column(db.String(255), default="")

    fecha_modificacion = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        from calendario.services.calendar_types import ReasonCode

        try:
            motivo_descripcion = ReasonCode(self.motivo).label
        except ValueError:
            motivo_descripcion = None
        return {
            "id": self.id,
            "cliente_id": self.cliente_id,
            "hito_id": self.hito_id,
            "cliente_proceso_hito_id": self.cliente_proceso_hito_id,
            "campo_modificado": self.campo_modificado,
            "valor_anterior": self.valor_anterior,
            "valor_nuevo": self.valor_nuevo,
            "observaciones": self.observaciones,
            "motivo": self.motivo,
            "motivo_descripcion": motivo_descripcion,
            "usuario": self.usuario,
            "codSubDepar": self.codSubDepar,
            "proceso_nombre": self.proceso_nombre,
            "hito_nombre": self.hito_nombre,
            "fecha_modificacion": (
                self.fecha_modificacion.isoformat() if self.fecha_modificacion else None
            ),
        }

    def __repr__(self):
        return (
            f"<AuditoriaCalendario {self.id}: {self.campo_modificado} "
            f"on cph={self.cliente_proceso_hito_id}>"
        )


# ── Convenience writer ───────────────────────────────────────────────────────

def write_calendar_audit(
    *,
    cliente_id: str | None,
    hito_id: int,
    cliente_proceso_hito_id: int | None,
    campo_modificado: str,
    valor_anterior: str | None,
    valor_nuevo: str | None,
    motivo: int,
    usuario: str,
    observaciones: str | None = None,
    codSubDepar: str | None = None,
    proceso_nombre: str = "",
    hito_nombre: str = "",
    fecha_modificacion: datetime | None = None,
) -> AuditoriaCalendario:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditoriaCalendario instance.
    """
    row = AuditoriaCalendario(
        cliente_id=cliente_id,
        hito_id=hito_id,
        cliente_proceso_hito_id=cliente_proceso_hito_id,
        campo_modificado=campo_modificado,
        valor_anterior=valor_anterior,
        valor_nuevo=valor_nuevo,
        observaciones=observaciones,
        motivo=motivo,
        usuario=usuario,
        codSubDepar=codSubDepar,
        proceso_nombre=proceso_nombre or "",
        hito_nombre=hito_nombre or "",
        fecha_modificacion=fecha_modificacion or datetime.now(),
    )
    db.session.add(row)
    db.session.flush()
    return row
