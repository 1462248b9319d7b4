from __future__ import annotations

from flask import request
from flask_login import login_required

from app.core.models import Rol
from app.core.permissions import C3_READERS, current_actor, require_role
from app.core.serializers import (
    historial_to_dict,
    persona_to_dict,
    rechazo_to_dict,
    solicitud_to_dict,
)
from app.core.utils import json_payload, ok, parse_bool, parse_int
from app.tramites import solicitudes_bp, tramites_bp
from app.tramites.services import (
    actualizar_solicitud,
    avanzar_fase,
    bandeja_c3,
    cambiar_estatus,
    crear_solicitud,
    decision_final_c5,
    detalle_c3,
    detalle_solicitud,
    dictamen_c3,
    disponer_persona_c5,
    eliminar_solicitud,
    enviar_a_c3,
    estadisticas,
    estatus_descriptivo,
    historial_c3,
    listar_solicitudes,
    parse_aprobacion,
    personas_de_solicitud,
    personas_pendientes_c3,
    personas_rechazadas,
    propuestas_pendientes,
    proponer_puesto_c3,
    rechazar_solicitud,
    registrar_personas,
    todas_personas_c5,
    validadas_c3,
)


def _detalle_response(solicitud_id: int):
    detalle = detalle_solicitud(solicitud_id, current_actor())
    return ok(
        solicitud=solicitud_to_dict(detalle["solicitud"], detalle["conteo"]),
        personas=[persona_to_dict(p) for p in detalle["personas"]],
        rechazos=[rechazo_to_dict(r) for r in detalle["rechazos"]],
        historial=[historial_to_dict(h) for h in detalle["historial"]],
    )


def _listado_response(solicitudes):
    rows = [solicitud_to_dict(s) for s in solicitudes]
    return ok(total=len(rows), solicitudes=rows)


def _listado_con_conteos(items):
    rows = [solicitud_to_dict(solicitud, conteo) for solicitud, conteo in items]
    return ok(total=len(rows), solicitudes=rows)


def _persona_con_tramite(persona):
    row = persona_to_dict(persona)
    row["numero_solicitud"] = persona.solicitud.numero_solicitud
    row["tramite_fase"] = persona.solicitud.fase_actual.value
    row["estatus_descriptivo"] = estatus_descriptivo(persona)
    return row


def _registrar_personas_response(solicitud_id: int):
    payload = json_payload()
    result = registrar_personas(solicitud_id, payload.get("personas"), current_actor())
    no_competencia = result["puestos_no_competencia"]
    message = f"{len(result['personas'])} personas registradas"
    if no_competencia:
        message += f"; {len(no_competencia)} con puesto que no es competencia municipal"
    return ok(
        message=message,
        status=201,
        solicitud=solicitud_to_dict(result["solicitud"]),
        personas=[persona_to_dict(p) for p in result["personas"]],
        puestos_no_competencia=no_competencia,
    )


def _enviar_a_c3_response(solicitud_id: int):
    conteo = enviar_a_c3(solicitud_id, current_actor())
    return ok(message="Solicitud enviada a C3", data=conteo)


# Request lifecycle (/api/tramites/alta)


@tramites_bp.post("/nueva-solicitud")
@login_required
def nueva_solicitud():
    solicitud = crear_solicitud(json_payload(), current_actor())
    return ok(
        message="Solicitud creada",
        status=201,
        solicitud=solicitud_to_dict(solicitud),
        numero_solicitud=solicitud.numero_solicitud,
    )


@tramites_bp.get("/mis-solicitudes")
@login_required
def mis_solicitudes():
    return _listado_response(listar_solicitudes(current_actor(), request.args.to_dict()))


@tramites_bp.get("/pendientes-c3")
@login_required
@require_role(*C3_READERS)
def pendientes_c3():
    return _listado_con_conteos(bandeja_c3(current_actor()))


@tramites_bp.get("/validadas-c3")
@login_required
def solicitudes_validadas_c3():
    return _listado_con_conteos(validadas_c3(current_actor()))


@tramites_bp.get("/historial-c3")
@login_required
@require_role(*C3_READERS)
def solicitudes_historial_c3():
    propias = parse_bool(request.args.get("propias"))
    items = historial_c3(current_actor(), solo_propias=propias, filtros=request.args.to_dict())
    rows = []
    for solicitud, stats in items:
        row = solicitud_to_dict(solicitud)
        row["personas_stats"] = stats
        rows.append(row)
    return ok(total=len(rows), solicitudes=rows)


@tramites_bp.get("/c3/<int:solicitud_id>")
@login_required
@require_role(*C3_READERS)
def tramite_detalle_c3(solicitud_id: int):
    detalle = detalle_c3(solicitud_id, current_actor())
    return ok(
        solicitud=solicitud_to_dict(detalle["solicitud"], detalle["conteo"]),
        personas=[persona_to_dict(p) for p in detalle["personas"]],
        rechazos=[rechazo_to_dict(r) for r in detalle["rechazos"]],
        historial=[historial_to_dict(h) for h in detalle["historial"]],
    )


@tramites_bp.get("/personas-pendientes-c3")
@login_required
@require_role(*C3_READERS)
def listado_personas_pendientes_c3():
    rows = [_persona_con_tramite(p) for p in personas_pendientes_c3(current_actor(), request.args.to_dict())]
    return ok(total=len(rows), personas=rows)


@tramites_bp.get("/todas-personas-c5")
@login_required
@require_role(Rol.ANALISTA)
def listado_todas_personas_c5():
    rows = [_persona_con_tramite(p) for p in todas_personas_c5(current_actor(), request.args.to_dict())]
    return ok(total=len(rows), personas=rows)


@tramites_bp.get("/propuestas-c3")
@login_required
def propuestas_c3():
    rows = [persona_to_dict(p) for p in propuestas_pendientes(current_actor())]
    return ok(total=len(rows), personas=rows)


@tramites_bp.get("/personas-rechazadas")
@login_required
def listado_personas_rechazadas():
    rows = [persona_to_dict(p) for p in personas_rechazadas(current_actor(), request.args.to_dict())]
    return ok(total=len(rows), personas=rows)


@tramites_bp.get("/estadisticas")
@login_required
def tramites_estadisticas():
    return ok(data=estadisticas(current_actor()))


@tramites_bp.get("/<int:solicitud_id>")
@login_required
def tramite_detalle(solicitud_id: int):
    return _detalle_response(solicitud_id)


@tramites_bp.post("/<int:solicitud_id>/personas")
@login_required
def tramite_registrar_personas(solicitud_id: int):
    return _registrar_personas_response(solicitud_id)


@tramites_bp.post("/<int:solicitud_id>/validar-personal")
@login_required
def tramite_validar_personal(solicitud_id: int):
    return _registrar_personas_response(solicitud_id)


@tramites_bp.get("/<int:solicitud_id>/personas")
@login_required
def tramite_personas(solicitud_id: int):
    rows = [persona_to_dict(p) for p in personas_de_solicitud(solicitud_id, current_actor())]
    return ok(total=len(rows), personas=rows)


@tramites_bp.put("/persona/<int:persona_id>/validar")
@login_required
def persona_validar(persona_id: int):
    persona = disponer_persona_c5(persona_id, True, current_actor())
    return ok(message="Persona validada", persona=persona_to_dict(persona))


@tramites_bp.put("/persona/<int:persona_id>/rechazar")
@login_required
def persona_rechazar(persona_id: int):
    payload = json_payload()
    persona = disponer_persona_c5(
        persona_id,
        False,
        current_actor(),
        motivo_rechazo_id=payload.get("motivo_rechazo_id"),
        observaciones=payload.get("observaciones") or "",
    )
    return ok(message="Persona rechazada", persona=persona_to_dict(persona))


@tramites_bp.post("/enviar-a-c3")
@login_required
def tramite_enviar_a_c3():
    payload = json_payload()
    solicitud_id = parse_int(payload.get("tramite_id") or payload.get("solicitud_id"), "tramite_id")
    return _enviar_a_c3_response(solicitud_id)


@tramites_bp.post("/<int:solicitud_id>/enviar-a-c3")
@login_required
def tramite_enviar_a_c3_por_id(solicitud_id: int):
    return _enviar_a_c3_response(solicitud_id)


@tramites_bp.post("/<int:solicitud_id>/dictamen-c3")
@login_required
def tramite_dictamen_c3(solicitud_id: int):
    payload = json_payload()
    aprobado = parse_aprobacion(payload)
    solicitud = dictamen_c3(
        solicitud_id,
        aprobado,
        current_actor(),
        observaciones=payload.get("observaciones") or "",
        motivo_rechazo_id=payload.get("motivo_rechazo_id"),
    )
    message = "Solicitud validada por C3" if aprobado else "Solicitud rechazada por C3"
    return ok(message=message, solicitud=solicitud_to_dict(solicitud))


@tramites_bp.post("/persona/<int:persona_id>/propuesta-c3")
@login_required
def persona_propuesta_c3(persona_id: int):
    payload = json_payload()
    persona = proponer_puesto_c3(
        persona_id,
        payload.get("puesto_propuesto_c3_id") or payload.get("puesto_id"),
        current_actor(),
        observaciones=payload.get("observaciones") or "",
    )
    return ok(message="Propuesta de puesto registrada", persona=persona_to_dict(persona))


@tramites_bp.post("/decision-final-c5")
@login_required
def tramite_decision_final_c5():
    payload = json_payload()
    solicitud_id = parse_int(payload.get("tramite_id") or payload.get("solicitud_id"), "tramite_id")
    result = decision_final_c5(solicitud_id, payload.get("decisiones"), current_actor())
    return ok(
        message=f"{result['procesadas']} decisiones registradas",
        solicitud=solicitud_to_dict(result["solicitud"]),
        pendientes=result["pendientes"],
    )


@tramites_bp.post("/<int:solicitud_id>/avanzar")
@login_required
def tramite_avanzar(solicitud_id: int):
    payload = json_payload()
    solicitud = avanzar_fase(
        solicitud_id,
        payload.get("fase"),
        current_actor(),
        comentario=payload.get("comentario") or "",
    )
    return ok(message=f"Solicitud en fase {solicitud.fase_actual.value}", solicitud=solicitud_to_dict(solicitud))


@tramites_bp.post("/<int:solicitud_id>/rechazar")
@login_required
def tramite_rechazar(solicitud_id: int):
    payload = json_payload()
    solicitud = rechazar_solicitud(
        solicitud_id,
        current_actor(),
        motivo_rechazo_id=payload.get("motivo_rechazo_id"),
        observaciones=payload.get("observaciones") or "",
        no_corresponde=parse_bool(payload.get("no_corresponde")),
    )
    return ok(message="Solicitud rechazada", solicitud=solicitud_to_dict(solicitud))


# Plain request CRUD (/api/solicitudes)


@solicitudes_bp.get("")
@login_required
def solicitudes_listado():
    return _listado_response(listar_solicitudes(current_actor(), request.args.to_dict()))


@solicitudes_bp.get("/estadisticas")
@login_required
def solicitudes_estadisticas():
    return ok(data=estadisticas(current_actor()))


@solicitudes_bp.get("/<int:solicitud_id>")
@login_required
def solicitud_detalle(solicitud_id: int):
    return _detalle_response(solicitud_id)


@solicitudes_bp.post("")
@login_required
@require_role(Rol.ANALISTA)
def solicitud_crear():
    solicitud = crear_solicitud(json_payload(), current_actor())
    return ok(message="Solicitud creada", status=201, solicitud=solicitud_to_dict(solicitud))


@solicitudes_bp.put("/<int:solicitud_id>")
@login_required
def solicitud_actualizar(solicitud_id: int):
    solicitud = actualizar_solicitud(solicitud_id, json_payload(), current_actor())
    return ok(message="Solicitud actualizada", solicitud=solicitud_to_dict(solicitud))


@solicitudes_bp.put("/<int:solicitud_id>/estatus")
@login_required
def solicitud_estatus(solicitud_id: int):
    payload = json_payload()
    solicitud = cambiar_estatus(
        solicitud_id,
        payload.get("estatus_id"),
        current_actor(),
        comentario=payload.get("comentario") or "",
    )
    return ok(message="Estatus actualizado", solicitud=solicitud_to_dict(solicitud))


@solicitudes_bp.delete("/<int:solicitud_id>")
@login_required
def solicitud_eliminar(solicitud_id: int):
    eliminar_solicitud(solicitud_id, current_actor())
    return ok(message="Solicitud eliminada")
