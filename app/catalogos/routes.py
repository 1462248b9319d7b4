from __future__ import annotations

from flask import request
from flask_login import login_required
from sqlalchemy import select
from sqlalchemy.orm import joinedload

from app.catalogos import catalogos_bp
from app.core.errors import ValidationError
from app.core.extensions import db
from app.core.models import (
    MOTIVO_CATEGORIAS,
    EstatusSolicitud,
    MotivoRechazo,
    Municipio,
    Puesto,
    Region,
    TipoOficio,
)
from app.core.serializers import (
    estatus_to_dict,
    motivo_to_dict,
    municipio_to_dict,
    puesto_to_dict,
    region_to_dict,
    tipo_oficio_to_dict,
)
from app.core.utils import clean, ok, parse_bool, parse_optional_int


@catalogos_bp.get("/tipos-oficio")
@login_required
def tipos_oficio():
    tipos = db.session.scalars(
        select(TipoOficio).where(TipoOficio.activo.is_(True)).order_by(TipoOficio.nombre.asc())
    )
    return ok(data=[tipo_oficio_to_dict(t) for t in tipos])


@catalogos_bp.get("/municipios")
@login_required
def municipios():
    stmt = select(Municipio).options(joinedload(Municipio.region)).order_by(Municipio.nombre.asc())
    region_id = parse_optional_int(request.args.get("region_id"), "region_id")
    if region_id is not None:
        stmt = stmt.where(Municipio.region_id == region_id)
    return ok(data=[municipio_to_dict(m) for m in db.session.scalars(stmt)])


@catalogos_bp.get("/regiones")
@login_required
def regiones():
    rows = db.session.scalars(select(Region).order_by(Region.nombre.asc()))
    return ok(data=[region_to_dict(r) for r in rows])


@catalogos_bp.get("/estatus")
@login_required
def estatus():
    rows = db.session.scalars(select(EstatusSolicitud).order_by(EstatusSolicitud.id.asc()))
    return ok(data=[estatus_to_dict(e) for e in rows])


@catalogos_bp.get("/motivos-rechazo")
@login_required
def motivos_rechazo():
    stmt = select(MotivoRechazo).where(MotivoRechazo.activo.is_(True))
    categoria = clean(request.args.get("categoria"))
    if categoria:
        if categoria not in MOTIVO_CATEGORIAS:
            raise ValidationError(f"Categoria invalida: {categoria}")
        stmt = stmt.where(MotivoRechazo.categoria == categoria)
    rows = db.session.scalars(stmt.order_by(MotivoRechazo.categoria.asc(), MotivoRechazo.codigo.asc()))
    return ok(data=[motivo_to_dict(m) for m in rows])


@catalogos_bp.get("/puestos")
@login_required
def puestos():
    stmt = select(Puesto).order_by(Puesto.nombre.asc())
    if "competencia" in request.args:
        stmt = stmt.where(Puesto.es_competencia_municipal.is_(parse_bool(request.args["competencia"])))
    rows = [puesto_to_dict(p) for p in db.session.scalars(stmt)]
    return ok(data=rows, total=len(rows))
