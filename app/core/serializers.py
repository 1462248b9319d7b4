from __future__ import annotations

from datetime import date, datetime

from app.core.models import (
    EstatusSolicitud,
    HistorialSolicitud,
    MotivoRechazo,
    Municipio,
    Persona,
    Puesto,
    Rechazo,
    Region,
    Solicitud,
    TipoOficio,
    User,
)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "nombre_completo": user.nombre_completo,
        "usuario": user.usuario,
        "extension": user.extension,
        "region_id": user.region_id,
        "region_nombre": user.region.nombre if user.region else None,
        "rol": user.rol.value,
        "activo": user.activo,
        "password_changed": user.password_changed,
        "created_at": _iso(user.created_at),
    }


def region_to_dict(region: Region) -> dict[str, object]:
    return {"id": region.id, "nombre": region.nombre, "total_municipios": region.total_municipios}


def municipio_to_dict(municipio: Municipio) -> dict[str, object]:
    return {
        "id": municipio.id,
        "clave": municipio.clave,
        "nombre": municipio.nombre,
        "region_id": municipio.region_id,
        "region_nombre": municipio.region.nombre if municipio.region else None,
    }


def tipo_oficio_to_dict(tipo: TipoOficio) -> dict[str, object]:
    return {"id": tipo.id, "nombre": tipo.nombre, "descripcion": tipo.descripcion}


def estatus_to_dict(estatus: EstatusSolicitud) -> dict[str, object]:
    return {"id": estatus.id, "nombre": estatus.nombre, "descripcion": estatus.descripcion, "color": estatus.color}


def motivo_to_dict(motivo: MotivoRechazo) -> dict[str, object]:
    return {"id": motivo.id, "codigo": motivo.codigo, "categoria": motivo.categoria, "descripcion": motivo.descripcion}


def puesto_to_dict(puesto: Puesto) -> dict[str, object]:
    return {
        "id": puesto.id,
        "nombre": puesto.nombre,
        "es_competencia_municipal": puesto.es_competencia_municipal,
        "motivo_no_competencia": puesto.motivo_no_competencia,
    }


def persona_to_dict(persona: Persona) -> dict[str, object]:
    return {
        "id": persona.id,
        "solicitud_id": persona.solicitud_id,
        "nombre": persona.nombre,
        "apellido_paterno": persona.apellido_paterno,
        "apellido_materno": persona.apellido_materno,
        "nombre_completo": persona.nombre_completo,
        "curp": persona.curp,
        "fecha_nacimiento": _iso(persona.fecha_nacimiento),
        "sexo": persona.sexo,
        "identificacion_tipo": persona.identificacion_tipo,
        "identificacion_numero": persona.identificacion_numero,
        "direccion": persona.direccion,
        "telefono": persona.telefono,
        "email": persona.email,
        "numero_oficio_c3": persona.numero_oficio_c3,
        "puesto_id": persona.puesto_id,
        "puesto_nombre": persona.puesto.nombre if persona.puesto else None,
        "puesto_propuesto_c3_id": persona.puesto_propuesto_c3_id,
        "puesto_propuesto_c3_nombre": persona.puesto_propuesto_c3.nombre if persona.puesto_propuesto_c3 else None,
        "tiene_propuesta_cambio": persona.tiene_propuesta_cambio,
        "decision_final_c5": persona.decision_final_c5.value,
        "observaciones_c3": persona.observaciones_c3,
        "fase_actual": persona.fase_actual.value,
        "validado_c5": persona.validado_c5,
        "validado_c3": persona.validado_c3,
        "rechazado": persona.rechazado,
        "motivo_rechazo_id": persona.motivo_rechazo_id,
        "motivo_rechazo": persona.motivo_rechazo.descripcion if persona.motivo_rechazo else None,
    }


def rechazo_to_dict(rechazo: Rechazo) -> dict[str, object]:
    return {
        "id": rechazo.id,
        "solicitud_id": rechazo.solicitud_id,
        "persona_id": rechazo.persona_id,
        "persona_nombre": rechazo.persona.nombre_completo if rechazo.persona else None,
        "motivo_rechazo_id": rechazo.motivo_rechazo_id,
        "motivo_codigo": rechazo.motivo.codigo if rechazo.motivo else None,
        "motivo_descripcion": rechazo.motivo.descripcion if rechazo.motivo else None,
        "fase_rechazo": rechazo.fase_rechazo,
        "observaciones": rechazo.observaciones,
        "rechazado_por": rechazo.rechazado_por,
        "rechazado_por_nombre": rechazo.usuario.nombre_completo if rechazo.usuario else None,
        "fecha_rechazo": _iso(rechazo.fecha_rechazo),
    }


def historial_to_dict(item: HistorialSolicitud) -> dict[str, object]:
    return {
        "id": item.id,
        "usuario_id": item.usuario_id,
        "usuario_nombre": item.usuario.nombre_completo if item.usuario else None,
        "fase_anterior": item.fase_anterior,
        "fase_nueva": item.fase_nueva,
        "comentario": item.comentario,
        "created_at": _iso(item.created_at),
    }


def solicitud_to_dict(solicitud: Solicitud, counts: dict[str, int] | None = None) -> dict[str, object]:
    municipio = solicitud.municipio
    data: dict[str, object] = {
        "id": solicitud.id,
        "numero_solicitud": solicitud.numero_solicitud,
        "tipo_oficio_id": solicitud.tipo_oficio_id,
        "tipo_oficio_nombre": solicitud.tipo_oficio.nombre if solicitud.tipo_oficio else None,
        "municipio_id": solicitud.municipio_id,
        "municipio_nombre": municipio.nombre if municipio else None,
        "region_id": municipio.region_id if municipio else None,
        "region_nombre": municipio.region.nombre if municipio and municipio.region else None,
        "usuario_id": solicitud.usuario_id,
        "usuario_nombre": solicitud.usuario.nombre_completo if solicitud.usuario else None,
        "usuario_validador_c3_id": solicitud.usuario_validador_c3_id,
        "dependencia": solicitud.dependencia,
        "datos_institucionales": solicitud.datos_institucionales,
        "proceso_movimiento": solicitud.proceso_movimiento,
        "termino": solicitud.termino.value,
        "dias_horas": solicitud.dias_horas,
        "numero_personas": solicitud.numero_personas,
        "fecha_sello_c5": _iso(solicitud.fecha_sello_c5),
        "fecha_recibido_dt": _iso(solicitud.fecha_recibido_dt),
        "fecha_solicitud": _iso(solicitud.fecha_solicitud),
        "fase_actual": solicitud.fase_actual.value,
        "estatus_id": solicitud.estatus_id,
        "estatus_nombre": solicitud.estatus.nombre if solicitud.estatus else None,
        "estatus_color": solicitud.estatus.color if solicitud.estatus else None,
        "observaciones": solicitud.observaciones,
        "validado_c3": solicitud.validado_c3,
        "validado_c3_fecha": _iso(solicitud.validado_c3_fecha),
        "validado_c3_observaciones": solicitud.validado_c3_observaciones,
        "fecha_finalizacion": _iso(solicitud.fecha_finalizacion),
        "created_at": _iso(solicitud.created_at),
        "updated_at": _iso(solicitud.updated_at),
    }
    if counts is not None:
        data.update(counts)
    return data
