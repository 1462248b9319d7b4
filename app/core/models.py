from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum, ForeignKey, Index, UniqueConstraint, select
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from app.core.catalog_data import (
    DEMO_USERS,
    ESTATUS_SOLICITUD,
    MOTIVOS_RECHAZO,
    MUNICIPIOS_POR_REGION,
    PUESTOS,
    TIPOS_OFICIO,
)
from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Rol(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    ANALISTA = "analista"
    VALIDADOR_C3 = "validador_c3"


class FaseSolicitud(str, Enum):
    CREACION = "creacion"
    VALIDACION_PREVIA_C5 = "validacion_previa_c5"
    ENVIADO_C3 = "enviado_c3"
    VALIDADO_C3 = "validado_c3"
    REVISION_PROPUESTA_C3 = "revision_propuesta_c3"
    EN_REVISION = "en_revision"
    ANTECEDENTES_RNPSP = "antecedentes_rnpsp"
    ANTECEDENTES_SUIC = "antecedentes_suic"
    REVISION_REQUISITOS = "revision_requisitos"
    REVISION_CEDULA = "revision_cedula"
    CITA_BIOMETRIAS = "cita_biometrias"
    VERIFICACION_ASISTENCIA = "verificacion_asistencia"
    CONSULTA_SIM = "consulta_sim"
    REGISTRO_RNPSP = "registro_rnpsp"
    FINALIZADO = "finalizado"
    RECHAZADO = "rechazado"
    RECHAZADO_NO_CORRESPONDE = "rechazado_no_corresponde"


class FasePersona(str, Enum):
    CAPTURA = "captura"
    VALIDACION_C5 = "validacion_c5"
    ENVIADO_C3 = "enviado_c3"
    VALIDADO_C3 = "validado_c3"
    EN_PROCESO = "en_proceso"
    FINALIZADO = "finalizado"
    RECHAZADO = "rechazado"


class DecisionFinal(str, Enum):
    PENDIENTE = "pendiente"
    ORIGINAL = "original"
    PROPUESTA = "propuesta"


class Termino(str, Enum):
    ORDINARIO = "Ordinario"
    EXTRAORDINARIO = "Extraordinario"


MOTIVO_CATEGORIAS: tuple[str, ...] = (
    "validacion_previa",
    "validacion_c3",
    "antecedentes",
    "requisitos",
    "cedula",
    "cita_vestimenta",
    "cita_inasistencia",
    "sim",
    "otro",
)


class Region(db.Model):
    __tablename__ = "region"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(100), unique=True, nullable=False)
    total_municipios: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    municipios = relationship("Municipio", back_populates="region", order_by="Municipio.nombre")


class Municipio(db.Model):
    # id is the official municipal clave
    __tablename__ = "municipio"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    nombre: Mapped[str] = mapped_column(db.String(150), nullable=False)
    region_id: Mapped[int] = mapped_column(ForeignKey("region.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    region = relationship("Region", back_populates="municipios")

    @property
    def clave(self) -> int:
        return self.id


class TipoOficio(db.Model):
    __tablename__ = "tipo_oficio"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(100), unique=True, nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)


class EstatusSolicitud(db.Model):
    __tablename__ = "estatus_solicitud"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(50), unique=True, nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    color: Mapped[str] = mapped_column(db.String(7), nullable=False, default="#9E9E9E")


class MotivoRechazo(db.Model):
    __tablename__ = "motivo_rechazo"

    id: Mapped[int] = mapped_column(primary_key=True)
    codigo: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    categoria: Mapped[str] = mapped_column(db.String(30), nullable=False, index=True)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False)
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)


class Puesto(db.Model):
    __tablename__ = "puesto"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(150), unique=True, nullable=False)
    es_competencia_municipal: Mapped[bool] = mapped_column(default=True, nullable=False, index=True)
    motivo_no_competencia: Mapped[str | None] = mapped_column(db.Text, nullable=True)


class User(UserMixin, db.Model):
    __tablename__ = "usuario"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre_completo: Mapped[str] = mapped_column(db.String(150), nullable=False)
    usuario: Mapped[str] = mapped_column(db.String(50), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    extension: Mapped[str | None] = mapped_column(db.String(20), unique=True, nullable=True)
    region_id: Mapped[int | None] = mapped_column(
        ForeignKey("region.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rol: Mapped[Rol] = mapped_column(SAEnum(Rol, name="rol_usuario"), nullable=False, default=Rol.ANALISTA)
    activo: Mapped[bool] = mapped_column(default=True, nullable=False)
    password_changed: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    region = relationship("Region")

    @property
    def is_active(self) -> bool:
        return bool(self.activo)


class Solicitud(db.Model):
    __tablename__ = "solicitud"
    __table_args__ = (
        Index("ix_solicitud_fase_estatus", "fase_actual", "estatus_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    numero_solicitud: Mapped[str] = mapped_column(db.String(50), unique=True, nullable=False)
    tipo_oficio_id: Mapped[int] = mapped_column(ForeignKey("tipo_oficio.id"), nullable=False)
    municipio_id: Mapped[int] = mapped_column(ForeignKey("municipio.id"), nullable=False, index=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False, index=True)
    usuario_validador_c3_id: Mapped[int | None] = mapped_column(ForeignKey("usuario.id"), nullable=True)
    dependencia: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    datos_institucionales: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    proceso_movimiento: Mapped[str] = mapped_column(db.String(255), nullable=False, default="ALTA")
    termino: Mapped[Termino] = mapped_column(
        SAEnum(Termino, name="termino_solicitud"),
        nullable=False,
        default=Termino.ORDINARIO,
    )
    dias_horas: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    numero_personas: Mapped[int | None] = mapped_column(nullable=True)
    fecha_sello_c5: Mapped[date | None] = mapped_column(nullable=True)
    fecha_recibido_dt: Mapped[date | None] = mapped_column(nullable=True)
    fecha_solicitud: Mapped[date] = mapped_column(nullable=False, index=True)
    fase_actual: Mapped[FaseSolicitud] = mapped_column(
        SAEnum(FaseSolicitud, name="fase_solicitud"),
        nullable=False,
        default=FaseSolicitud.CREACION,
    )
    estatus_id: Mapped[int] = mapped_column(ForeignKey("estatus_solicitud.id"), nullable=False, default=1)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    validado_c3: Mapped[bool] = mapped_column(default=False, nullable=False)
    validado_c3_fecha: Mapped[datetime | None] = mapped_column(nullable=True)
    validado_c3_observaciones: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    fecha_finalizacion: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    tipo_oficio = relationship("TipoOficio")
    municipio = relationship("Municipio")
    estatus = relationship("EstatusSolicitud")
    usuario = relationship("User", foreign_keys=[usuario_id])
    validador_c3 = relationship("User", foreign_keys=[usuario_validador_c3_id])
    personas = relationship(
        "Persona",
        back_populates="solicitud",
        cascade="all, delete-orphan",
        order_by="Persona.id",
    )
    historial = relationship(
        "HistorialSolicitud",
        back_populates="solicitud",
        cascade="all, delete-orphan",
        order_by="HistorialSolicitud.id",
    )


class Persona(db.Model):
    __tablename__ = "persona"
    __table_args__ = (UniqueConstraint("solicitud_id", "curp", name="uq_persona_solicitud_curp"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    solicitud_id: Mapped[int] = mapped_column(
        ForeignKey("solicitud.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    nombre: Mapped[str] = mapped_column(db.String(100), nullable=False)
    apellido_paterno: Mapped[str] = mapped_column(db.String(100), nullable=False)
    apellido_materno: Mapped[str] = mapped_column(db.String(100), nullable=False, default="")
    curp: Mapped[str] = mapped_column(db.String(18), nullable=False, index=True)
    fecha_nacimiento: Mapped[date] = mapped_column(nullable=False)
    sexo: Mapped[str] = mapped_column(db.String(1), nullable=False)
    identificacion_tipo: Mapped[str] = mapped_column(db.String(50), nullable=False, default="")
    identificacion_numero: Mapped[str] = mapped_column(db.String(50), nullable=False, default="")
    direccion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    telefono: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    numero_oficio_c3: Mapped[str] = mapped_column(db.String(100), nullable=False, default="")
    puesto_id: Mapped[int | None] = mapped_column(ForeignKey("puesto.id"), nullable=True)
    puesto_propuesto_c3_id: Mapped[int | None] = mapped_column(ForeignKey("puesto.id"), nullable=True)
    tiene_propuesta_cambio: Mapped[bool] = mapped_column(default=False, nullable=False)
    decision_final_c5: Mapped[DecisionFinal] = mapped_column(
        SAEnum(DecisionFinal, name="decision_final_c5"),
        nullable=False,
        default=DecisionFinal.PENDIENTE,
    )
    observaciones_c3: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    fase_actual: Mapped[FasePersona] = mapped_column(
        SAEnum(FasePersona, name="fase_persona"),
        nullable=False,
        default=FasePersona.CAPTURA,
    )
    validado_c5: Mapped[bool] = mapped_column(default=False, nullable=False)
    validado_c3: Mapped[bool] = mapped_column(default=False, nullable=False)
    rechazado: Mapped[bool] = mapped_column(default=False, nullable=False)
    motivo_rechazo_id: Mapped[int | None] = mapped_column(ForeignKey("motivo_rechazo.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    solicitud = relationship("Solicitud", back_populates="personas")
    puesto = relationship("Puesto", foreign_keys=[puesto_id])
    puesto_propuesto_c3 = relationship("Puesto", foreign_keys=[puesto_propuesto_c3_id])
    motivo_rechazo = relationship("MotivoRechazo")

    @property
    def nombre_completo(self) -> str:
        return " ".join(part for part in (self.nombre, self.apellido_paterno, self.apellido_materno) if part)


class Rechazo(db.Model):
    # append-only: there is no update or delete path outside maintenance cleanup
    __tablename__ = "rechazo"

    id: Mapped[int] = mapped_column(primary_key=True)
    solicitud_id: Mapped[int | None] = mapped_column(
        ForeignKey("solicitud.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    persona_id: Mapped[int | None] = mapped_column(
        ForeignKey("persona.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    motivo_rechazo_id: Mapped[int] = mapped_column(ForeignKey("motivo_rechazo.id"), nullable=False)
    fase_rechazo: Mapped[str] = mapped_column(db.String(50), nullable=False)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    rechazado_por: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    fecha_rechazo: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    motivo = relationship("MotivoRechazo")
    usuario = relationship("User")
    persona = relationship("Persona")


class HistorialSolicitud(db.Model):
    __tablename__ = "historial_solicitud"

    id: Mapped[int] = mapped_column(primary_key=True)
    solicitud_id: Mapped[int] = mapped_column(
        ForeignKey("solicitud.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuario.id"), nullable=False)
    fase_anterior: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    fase_nueva: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    comentario: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    solicitud = relationship("Solicitud", back_populates="historial")
    usuario = relationship("User")


def seed_catalogos(session) -> None:
    """Load the reference catalogs. Safe to run repeatedly."""
    existing_regions = {region.nombre: region for region in session.scalars(select(Region))}
    for nombre, municipios in MUNICIPIOS_POR_REGION.items():
        region = existing_regions.get(nombre)
        if region is None:
            region = Region(nombre=nombre, total_municipios=len(municipios))
            session.add(region)
            session.flush()
        for clave, municipio_nombre in municipios:
            if session.get(Municipio, clave) is None:
                session.add(Municipio(id=clave, nombre=municipio_nombre, region_id=region.id))

    known_tipos = set(session.scalars(select(TipoOficio.nombre)))
    session.add_all(
        TipoOficio(nombre=nombre, descripcion=descripcion)
        for nombre, descripcion in TIPOS_OFICIO
        if nombre not in known_tipos
    )

    for idx, (nombre, descripcion, color) in enumerate(ESTATUS_SOLICITUD, start=1):
        if session.get(EstatusSolicitud, idx) is None:
            session.add(EstatusSolicitud(id=idx, nombre=nombre, descripcion=descripcion, color=color))

    known_motivos = set(session.scalars(select(MotivoRechazo.codigo)))
    session.add_all(
        MotivoRechazo(codigo=codigo, categoria=categoria, descripcion=descripcion)
        for codigo, categoria, descripcion in MOTIVOS_RECHAZO
        if codigo not in known_motivos
    )

    known_puestos = set(session.scalars(select(Puesto.nombre)))
    session.add_all(
        Puesto(nombre=nombre, es_competencia_municipal=competencia, motivo_no_competencia=motivo)
        for nombre, competencia, motivo in PUESTOS
        if nombre not in known_puestos
    )
    session.flush()


def seed_demo_data(session) -> None:
    seed_catalogos(session)
    regions = {region.nombre: region.id for region in session.scalars(select(Region))}
    known_users = set(session.scalars(select(User.usuario)))
    for usuario, nombre_completo, extension, region, rol, password_changed in DEMO_USERS:
        if usuario in known_users:
            continue
        session.add(
            User(
                usuario=usuario,
                nombre_completo=nombre_completo,
                extension=extension,
                password_hash=generate_password_hash(extension),
                region_id=regions.get(region) if region else None,
                rol=Rol(rol),
                password_changed=password_changed,
            )
        )
    session.commit()
