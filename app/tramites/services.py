from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from flask import current_app
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import joinedload

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.core.catalog_data import is_valid_curp
from app.core.extensions import db
from app.core.models import (
    DecisionFinal,
    EstatusSolicitud,
    FasePersona,
    FaseSolicitud,
    HistorialSolicitud,
    MotivoRechazo,
    Municipio,
    Persona,
    Puesto,
    Rechazo,
    Rol,
    Solicitud,
    Termino,
    User,
    utcnow,
)
from app.core.permissions import ADMIN_ROLES, C3_READERS, ensure_role
from app.core.storage import unit_of_work
from app.core.tenancy import can_see, is_region_scoped, scope_to_region
from app.core.utils import (
    clean,
    parse_bool,
    parse_int,
    parse_iso_date,
    parse_optional_int,
    parse_optional_iso_date,
)

logger = logging.getLogger(__name__)

ESTATUS_PENDIENTE = 1
ESTATUS_EN_PROCESO = 2
ESTATUS_EN_REVISION = 3
ESTATUS_APROBADA = 4
ESTATUS_RECHAZADA = 5
ESTATUS_COMPLETADA = 6

FASES_ORDEN: tuple[FaseSolicitud, ...] = (
    FaseSolicitud.CREACION,
    FaseSolicitud.VALIDACION_PREVIA_C5,
    FaseSolicitud.ENVIADO_C3,
    FaseSolicitud.VALIDADO_C3,
    FaseSolicitud.REVISION_PROPUESTA_C3,
    FaseSolicitud.EN_REVISION,
    FaseSolicitud.ANTECEDENTES_RNPSP,
    FaseSolicitud.ANTECEDENTES_SUIC,
    FaseSolicitud.REVISION_REQUISITOS,
    FaseSolicitud.REVISION_CEDULA,
    FaseSolicitud.CITA_BIOMETRIAS,
    FaseSolicitud.VERIFICACION_ASISTENCIA,
    FaseSolicitud.CONSULTA_SIM,
    FaseSolicitud.REGISTRO_RNPSP,
    FaseSolicitud.FINALIZADO,
)
FASE_RANGO: dict[FaseSolicitud, int] = {fase: idx for idx, fase in enumerate(FASES_ORDEN)}

FASES_RECHAZO: frozenset[FaseSolicitud] = frozenset(
    {FaseSolicitud.RECHAZADO, FaseSolicitud.RECHAZADO_NO_CORRESPONDE}
)
FASES_TERMINALES: frozenset[FaseSolicitud] = FASES_RECHAZO | {FaseSolicitud.FINALIZADO}

# Post-C3 pipeline reachable through avanzar_fase, in order.
FASES_AVANCE: tuple[FaseSolicitud, ...] = FASES_ORDEN[FASE_RANGO[FaseSolicitud.EN_REVISION]:]
FASES_VALIDADAS_C3: frozenset[FaseSolicitud] = frozenset(
    FASES_ORDEN[FASE_RANGO[FaseSolicitud.VALIDADO_C3]:]
)


def _build_transitions() -> dict[FaseSolicitud, set[FaseSolicitud]]:
    table: dict[FaseSolicitud, set[FaseSolicitud]] = {
        FaseSolicitud.CREACION: {FaseSolicitud.VALIDACION_PREVIA_C5},
        FaseSolicitud.VALIDACION_PREVIA_C5: {FaseSolicitud.ENVIADO_C3},
        FaseSolicitud.ENVIADO_C3: {FaseSolicitud.VALIDADO_C3},
        FaseSolicitud.VALIDADO_C3: {FaseSolicitud.REVISION_PROPUESTA_C3, *FASES_AVANCE},
        FaseSolicitud.REVISION_PROPUESTA_C3: set(FASES_AVANCE),
    }
    for idx, fase in enumerate(FASES_AVANCE[:-1]):
        table[fase] = set(FASES_AVANCE[idx + 1 :])
    for fase in table:
        table[fase] |= FASES_RECHAZO
    for fase in FASES_TERMINALES:
        table[fase] = set()
    return table


SOLICITUD_TRANSITIONS: dict[FaseSolicitud, set[FaseSolicitud]] = _build_transitions()

# Request phase each person phase corresponds to; a person may never rank above its request.
FASE_PERSONA_EQUIVALENTE: dict[FasePersona, FaseSolicitud] = {
    FasePersona.CAPTURA: FaseSolicitud.CREACION,
    FasePersona.VALIDACION_C5: FaseSolicitud.VALIDACION_PREVIA_C5,
    FasePersona.ENVIADO_C3: FaseSolicitud.ENVIADO_C3,
    FasePersona.VALIDADO_C3: FaseSolicitud.VALIDADO_C3,
    FasePersona.EN_PROCESO: FaseSolicitud.EN_REVISION,
    FasePersona.FINALIZADO: FaseSolicitud.FINALIZADO,
}

EDITABLE_FASES: frozenset[FaseSolicitud] = frozenset(
    {FaseSolicitud.CREACION, FaseSolicitud.VALIDACION_PREVIA_C5}
)


def estatus_para_fase(fase: FaseSolicitud) -> int:
    if fase == FaseSolicitud.CREACION:
        return ESTATUS_PENDIENTE
    if fase == FaseSolicitud.ENVIADO_C3:
        return ESTATUS_EN_REVISION
    if fase == FaseSolicitud.VALIDADO_C3:
        return ESTATUS_APROBADA
    if fase == FaseSolicitud.FINALIZADO:
        return ESTATUS_COMPLETADA
    if fase in FASES_RECHAZO:
        return ESTATUS_RECHAZADA
    return ESTATUS_EN_PROCESO


def persona_en_orden(persona: Persona, solicitud: Solicitud) -> bool:
    if persona.fase_actual == FasePersona.RECHAZADO or solicitud.fase_actual in FASES_RECHAZO:
        return True
    equivalente = FASE_PERSONA_EQUIVALENTE[persona.fase_actual]
    return FASE_RANGO[equivalente] <= FASE_RANGO[solicitud.fase_actual]


def _parse_fase(value: object) -> FaseSolicitud:
    raw = clean(value).lower()
    try:
        return FaseSolicitud(raw)
    except ValueError as exc:
        raise ValidationError(f"Fase invalida: {raw}") from exc


def _parse_termino(value: object) -> Termino:
    raw = clean(value)
    if not raw:
        return Termino.ORDINARIO
    for termino in Termino:
        if termino.value.lower() == raw.lower():
            return termino
    raise ValidationError("Termino invalido (Ordinario o Extraordinario)")


def _parse_numero_personas(value: object) -> int | None:
    numero = parse_optional_int(value, "numero_personas")
    if numero is not None and numero < 1:
        raise ValidationError("numero_personas debe ser mayor que cero")
    return numero


def _validate_email(value: object) -> str:
    email = clean(value)
    if not email:
        return ""
    local, _, domain = email.partition("@")
    if not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
        raise ValidationError("Email invalido")
    return email


def _next_numero_solicitud(anio: int) -> str:
    prefix = current_app.config["NUMERO_SOLICITUD_PREFIX"]
    base = f"{prefix}-{anio}-"
    numeros = db.session.scalars(
        select(Solicitud.numero_solicitud).where(Solicitud.numero_solicitud.like(f"{base}%"))
    )
    ultimo = 0
    for numero in numeros:
        suffix = numero[len(base) :]
        if suffix.isdigit():
            ultimo = max(ultimo, int(suffix))
    return f"{base}{ultimo + 1:06d}"


def _registrar_historial(
    solicitud: Solicitud,
    user: User,
    fase_anterior: FaseSolicitud | None,
    fase_nueva: FaseSolicitud | None,
    comentario: str = "",
) -> None:
    db.session.add(
        HistorialSolicitud(
            solicitud_id=solicitud.id,
            usuario_id=user.id,
            fase_anterior=fase_anterior.value if fase_anterior else None,
            fase_nueva=fase_nueva.value if fase_nueva else None,
            comentario=comentario,
        )
    )


def _cambiar_fase(solicitud: Solicitud, nueva: FaseSolicitud, user: User, comentario: str = "") -> None:
    actual = solicitud.fase_actual
    if nueva not in SOLICITUD_TRANSITIONS.get(actual, set()):
        logger.warning(
            "Transicion rechazada para %s: %s -> %s", solicitud.numero_solicitud, actual.value, nueva.value
        )
        raise ValidationError(f"Transicion invalida: {actual.value} -> {nueva.value}")
    solicitud.fase_actual = nueva
    solicitud.estatus_id = estatus_para_fase(nueva)
    _registrar_historial(solicitud, user, actual, nueva, comentario)
    logger.info(
        "Solicitud %s: %s -> %s (usuario %s)", solicitud.numero_solicitud, actual.value, nueva.value, user.id
    )


def _mover_persona(persona: Persona, fase: FasePersona, solicitud: Solicitud) -> None:
    persona.fase_actual = fase
    if not persona_en_orden(persona, solicitud):
        raise ValidationError(
            f"La persona {persona.id} no puede adelantarse a la fase de su solicitud ({solicitud.fase_actual.value})"
        )


def _log_rechazo(
    user: User,
    motivo: MotivoRechazo,
    fase_rechazo: str,
    observaciones: str,
    solicitud_id: int | None,
    persona_id: int | None = None,
) -> None:
    db.session.add(
        Rechazo(
            solicitud_id=solicitud_id,
            persona_id=persona_id,
            motivo_rechazo_id=motivo.id,
            fase_rechazo=fase_rechazo,
            observaciones=observaciones,
            rechazado_por=user.id,
        )
    )


def _get_motivo(value: object) -> MotivoRechazo:
    if value is None or clean(value) == "":
        raise ValidationError("El motivo de rechazo es obligatorio")
    motivo = db.session.get(MotivoRechazo, parse_int(value, "motivo_rechazo_id"))
    if motivo is None or not motivo.activo:
        raise ValidationError("Motivo de rechazo no valido")
    return motivo


def _get_solicitud(solicitud_id: int, user: User, for_update: bool = False) -> Solicitud:
    stmt = select(Solicitud).where(Solicitud.id == solicitud_id)
    if for_update:
        # refresh a row already in the identity map with what the lock returned
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    solicitud = db.session.scalar(stmt)
    if solicitud is None or not can_see(solicitud, user):
        raise NotFoundError("Solicitud no encontrada")
    return solicitud


def _get_persona(persona_id: int, user: User) -> Persona:
    persona = db.session.get(Persona, persona_id)
    if persona is None or not can_see(persona.solicitud, user):
        raise NotFoundError("Persona no encontrada")
    return persona


def _propuestas_pendientes_count(solicitud_id: int) -> int:
    return db.session.scalar(
        select(func.count(Persona.id)).where(
            Persona.solicitud_id == solicitud_id,
            Persona.tiene_propuesta_cambio.is_(True),
            Persona.decision_final_c5 == DecisionFinal.PENDIENTE,
            Persona.rechazado.is_(False),
        )
    ) or 0


def conteo_personas(solicitud_id: int) -> dict[str, int]:
    validada = and_(Persona.validado_c5.is_(True), Persona.rechazado.is_(False))
    total, validadas, rechazadas = db.session.execute(
        select(
            func.count(Persona.id),
            func.coalesce(func.sum(case((validada, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Persona.rechazado.is_(True), 1), else_=0)), 0),
        ).where(Persona.solicitud_id == solicitud_id)
    ).one()
    return {"total": int(total), "validadas": int(validadas), "rechazadas": int(rechazadas)}


def _conteos_por_solicitud(solicitud_ids: list[int]) -> dict[int, dict[str, int]]:
    if not solicitud_ids:
        return {}
    rows = db.session.execute(
        select(
            Persona.solicitud_id,
            func.count(Persona.id),
            func.coalesce(func.sum(case((Persona.rechazado.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((Persona.fase_actual == FasePersona.ENVIADO_C3, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Persona.tiene_propuesta_cambio.is_(True), 1), else_=0)), 0),
        )
        .where(Persona.solicitud_id.in_(solicitud_ids))
        .group_by(Persona.solicitud_id)
    ).all()
    conteos = {
        solicitud_id: {
            "total_personas": 0,
            "personas_rechazadas": 0,
            "personas_vigentes": 0,
            "personas_enviadas_c3": 0,
            "personas_con_propuesta": 0,
        }
        for solicitud_id in solicitud_ids
    }
    for solicitud_id, total, rechazadas, enviadas, propuestas in rows:
        conteos[solicitud_id] = {
            "total_personas": int(total),
            "personas_rechazadas": int(rechazadas),
            "personas_vigentes": int(total) - int(rechazadas),
            "personas_enviadas_c3": int(enviadas),
            "personas_con_propuesta": int(propuestas),
        }
    return conteos


def _solicitud_query():
    return select(Solicitud).options(
        joinedload(Solicitud.municipio).joinedload(Municipio.region),
        joinedload(Solicitud.estatus),
        joinedload(Solicitud.tipo_oficio),
        joinedload(Solicitud.usuario),
    )


# Operations


def crear_solicitud(payload: dict, user: User) -> Solicitud:
    ensure_role(user, Rol.ANALISTA)
    tipo_oficio_id = parse_int(payload.get("tipo_oficio_id"), "tipo_oficio_id")
    municipio_id = parse_int(payload.get("municipio_id"), "municipio_id")
    fecha_solicitud = parse_iso_date(payload.get("fecha_solicitud"), "fecha_solicitud")
    fecha_sello_c5 = parse_optional_iso_date(payload.get("fecha_sello_c5"), "fecha_sello_c5")
    fecha_recibido_dt = parse_optional_iso_date(payload.get("fecha_recibido_dt"), "fecha_recibido_dt")
    termino = _parse_termino(payload.get("termino"))
    numero_personas = _parse_numero_personas(payload.get("numero_personas"))
    if is_region_scoped(user):
        municipio = db.session.get(Municipio, municipio_id)
        # unknown ids fall through to the store's foreign key check
        if user.region_id is None or (municipio is not None and municipio.region_id != user.region_id):
            logger.warning("Usuario %s intento crear solicitud fuera de su region (municipio %s)", user.id, municipio_id)
            raise AuthorizationError("El municipio no pertenece a tu region")

    with unit_of_work("Error al crear la solicitud") as session:
        solicitud = Solicitud(
            numero_solicitud=_next_numero_solicitud(fecha_solicitud.year),
            tipo_oficio_id=tipo_oficio_id,
            municipio_id=municipio_id,
            usuario_id=user.id,
            dependencia=clean(payload.get("dependencia")),
            datos_institucionales=clean(payload.get("datos_institucionales")),
            proceso_movimiento=clean(payload.get("proceso_movimiento")) or "ALTA",
            termino=termino,
            dias_horas=clean(payload.get("dias_horas")) or None,
            numero_personas=numero_personas,
            fecha_sello_c5=fecha_sello_c5,
            fecha_recibido_dt=fecha_recibido_dt,
            fecha_solicitud=fecha_solicitud,
            fase_actual=FaseSolicitud.CREACION,
            estatus_id=ESTATUS_PENDIENTE,
            observaciones=clean(payload.get("observaciones")),
        )
        session.add(solicitud)
        session.flush()
        _registrar_historial(solicitud, user, None, FaseSolicitud.CREACION, "Solicitud creada")
    logger.info("Solicitud %s creada por usuario %s", solicitud.numero_solicitud, user.id)
    return solicitud


def _persona_payload(raw: object) -> dict[str, object]:
    if not isinstance(raw, dict):
        raise ValidationError("Registro de persona invalido")
    nombre = clean(raw.get("nombre"))
    apellido_paterno = clean(raw.get("apellido_paterno"))
    if not nombre:
        raise ValidationError("Falta nombre")
    if not apellido_paterno:
        raise ValidationError("Falta apellido_paterno")
    curp = clean(raw.get("curp")).upper()
    if not is_valid_curp(curp):
        raise ValidationError(f"CURP invalido: {curp or '(vacio)'}")
    fecha_nacimiento = parse_iso_date(raw.get("fecha_nacimiento"), "fecha_nacimiento")
    if fecha_nacimiento >= date.today():
        raise ValidationError("La fecha de nacimiento debe ser anterior a hoy")
    sexo = clean(raw.get("sexo")).upper()
    if sexo not in {"M", "F"}:
        raise ValidationError("Sexo invalido (M o F)")
    puesto_id = parse_optional_int(raw.get("puesto_id"), "puesto_id")
    if puesto_id is not None and db.session.get(Puesto, puesto_id) is None:
        raise ValidationError("Puesto no encontrado")
    return {
        "nombre": nombre,
        "apellido_paterno": apellido_paterno,
        "apellido_materno": clean(raw.get("apellido_materno")),
        "curp": curp,
        "fecha_nacimiento": fecha_nacimiento,
        "sexo": sexo,
        "identificacion_tipo": clean(raw.get("identificacion_tipo")),
        "identificacion_numero": clean(raw.get("identificacion_numero")),
        "direccion": clean(raw.get("direccion")),
        "telefono": clean(raw.get("telefono")),
        "email": _validate_email(raw.get("email")),
        "numero_oficio_c3": clean(raw.get("numero_oficio_c3")),
        "puesto_id": puesto_id,
    }


def registrar_personas(solicitud_id: int, personas: object, user: User) -> dict[str, object]:
    """Register a batch of persons on a request.

    The whole batch is validated before anything is written and is stored in a
    single transaction, together with the move of the request to
    ``validacion_previa_c5``. Persons whose position is not a municipal
    competence stay in ``captura`` and are reported so the analyst disposes
    them explicitly.
    """
    ensure_role(user, Rol.ANALISTA)
    if not isinstance(personas, list) or not personas:
        raise ValidationError("Debe enviar al menos una persona")

    with unit_of_work("Error al registrar las personas; no se guardo ningun registro") as session:
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        if solicitud.fase_actual not in EDITABLE_FASES:
            raise ValidationError(
                f"No se pueden registrar personas en la fase {solicitud.fase_actual.value}"
            )

        errores: list[dict[str, object]] = []
        registros: list[dict[str, object]] = []
        curps: set[str] = set()
        for idx, raw in enumerate(personas):
            try:
                datos = _persona_payload(raw)
            except ValidationError as exc:
                errores.append({"indice": idx, "mensaje": exc.message})
                continue
            if datos["curp"] in curps:
                errores.append({"indice": idx, "mensaje": f"CURP duplicado en el lote: {datos['curp']}"})
                continue
            curps.add(str(datos["curp"]))
            registros.append(datos)
        if errores:
            logger.warning("Registro de personas rechazado para %s: %s errores", solicitud.numero_solicitud, len(errores))
            raise ValidationError("Hay personas con datos invalidos", data={"errores": errores})

        creadas = [
            Persona(solicitud_id=solicitud.id, fase_actual=FasePersona.CAPTURA, **datos) for datos in registros
        ]
        session.add_all(creadas)
        session.flush()

        no_competencia = [
            {
                "persona_id": persona.id,
                "curp": persona.curp,
                "puesto": persona.puesto.nombre,
                "motivo": persona.puesto.motivo_no_competencia,
            }
            for persona in creadas
            if persona.puesto is not None and not persona.puesto.es_competencia_municipal
        ]
        if solicitud.fase_actual == FaseSolicitud.CREACION:
            _cambiar_fase(
                solicitud,
                FaseSolicitud.VALIDACION_PREVIA_C5,
                user,
                f"{len(creadas)} personas registradas",
            )
    logger.info("Solicitud %s: %s personas registradas", solicitud.numero_solicitud, len(creadas))
    return {"solicitud": solicitud, "personas": creadas, "puestos_no_competencia": no_competencia}


def disponer_persona_c5(
    persona_id: int,
    aprobar: bool,
    user: User,
    motivo_rechazo_id: object = None,
    observaciones: str = "",
) -> Persona:
    ensure_role(user, Rol.ANALISTA)
    with unit_of_work("Error al validar la persona"):
        persona = _get_persona(persona_id, user)
        solicitud = persona.solicitud
        if solicitud.fase_actual != FaseSolicitud.VALIDACION_PREVIA_C5:
            raise ValidationError("La solicitud no esta en validacion previa C5")
        if persona.rechazado:
            raise ValidationError("La persona ya fue rechazada")
        if persona.fase_actual not in {FasePersona.CAPTURA, FasePersona.VALIDACION_C5}:
            raise ValidationError(f"La persona no se puede validar en la fase {persona.fase_actual.value}")

        if aprobar:
            persona.validado_c5 = True
            persona.motivo_rechazo_id = None
            _mover_persona(persona, FasePersona.VALIDACION_C5, solicitud)
            logger.info("Persona %s validada por C5 (usuario %s)", persona.id, user.id)
        else:
            motivo = _get_motivo(motivo_rechazo_id)
            persona.rechazado = True
            persona.validado_c5 = False
            persona.motivo_rechazo_id = motivo.id
            persona.fase_actual = FasePersona.RECHAZADO
            _log_rechazo(user, motivo, "validacion_previa", clean(observaciones), solicitud.id, persona.id)
            logger.info("Persona %s rechazada por C5 con motivo %s (usuario %s)", persona.id, motivo.codigo, user.id)
    return persona


def enviar_a_c3(solicitud_id: int, user: User) -> dict[str, int]:
    """Submit a request to C3.

    Only passes when every person has a C5 disposition and at least one was
    approved. On failure nothing is written and the counts travel with the
    error so the analyst can see which persons remain undecided.
    """
    ensure_role(user, Rol.ANALISTA)
    with unit_of_work("Error al enviar la solicitud a C3"):
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        if solicitud.fase_actual != FaseSolicitud.VALIDACION_PREVIA_C5:
            raise ValidationError(
                f"La solicitud debe estar en validacion previa C5 (fase actual: {solicitud.fase_actual.value})"
            )
        conteo = conteo_personas(solicitud.id)
        total, validadas, rechazadas = conteo["total"], conteo["validadas"], conteo["rechazadas"]
        if validadas + rechazadas != total:
            logger.warning("Envio a C3 bloqueado para %s: %s", solicitud.numero_solicitud, conteo)
            raise ValidationError(
                f"Faltan personas por validar. Total: {total}, Validadas: {validadas}, Rechazadas: {rechazadas}",
                data=conteo,
            )
        if validadas == 0:
            logger.warning("Envio a C3 bloqueado para %s: sin personas aprobadas", solicitud.numero_solicitud)
            raise ValidationError("No hay personas aprobadas para enviar a C3", data=conteo)

        _cambiar_fase(solicitud, FaseSolicitud.ENVIADO_C3, user, f"Enviada a C3 con {validadas} personas")
        for persona in solicitud.personas:
            if persona.validado_c5 and not persona.rechazado:
                _mover_persona(persona, FasePersona.ENVIADO_C3, solicitud)
    return conteo


def dictamen_c3(
    solicitud_id: int,
    aprobar: bool,
    user: User,
    observaciones: str = "",
    motivo_rechazo_id: object = None,
) -> Solicitud:
    ensure_role(user, Rol.VALIDADOR_C3)
    observaciones = clean(observaciones)
    with unit_of_work("Error al registrar el dictamen C3"):
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        if solicitud.fase_actual != FaseSolicitud.ENVIADO_C3:
            raise ValidationError("La solicitud no esta pendiente de dictamen C3")
        enviadas = [p for p in solicitud.personas if p.fase_actual == FasePersona.ENVIADO_C3]
        solicitud.usuario_validador_c3_id = user.id
        solicitud.validado_c3_fecha = utcnow()
        solicitud.validado_c3_observaciones = observaciones or None

        if aprobar:
            solicitud.validado_c3 = True
            _cambiar_fase(solicitud, FaseSolicitud.VALIDADO_C3, user, observaciones or "Aprobada por C3")
            for persona in enviadas:
                persona.validado_c3 = True
                _mover_persona(persona, FasePersona.VALIDADO_C3, solicitud)
        else:
            motivo = _get_motivo(motivo_rechazo_id)
            solicitud.validado_c3 = False
            _cambiar_fase(solicitud, FaseSolicitud.RECHAZADO, user, observaciones or "Rechazada por C3")
            for persona in enviadas:
                persona.rechazado = True
                persona.validado_c3 = False
                persona.motivo_rechazo_id = motivo.id
                persona.fase_actual = FasePersona.RECHAZADO
            # single institutional decision: one audit row for the whole request
            _log_rechazo(user, motivo, "validacion_c3", observaciones, solicitud.id)
    return solicitud


def proponer_puesto_c3(persona_id: int, puesto_id: object, user: User, observaciones: str = "") -> Persona:
    ensure_role(user, Rol.VALIDADOR_C3)
    with unit_of_work("Error al registrar la propuesta de puesto"):
        persona = _get_persona(persona_id, user)
        if persona.solicitud.fase_actual != FaseSolicitud.ENVIADO_C3 or persona.fase_actual != FasePersona.ENVIADO_C3:
            raise ValidationError("Solo se pueden proponer puestos para personas enviadas a C3")
        puesto = db.session.get(Puesto, parse_int(puesto_id, "puesto_id"))
        if puesto is None:
            raise ValidationError("Puesto no encontrado")
        if puesto.id == persona.puesto_id:
            raise ValidationError("El puesto propuesto es igual al puesto original")
        persona.puesto_propuesto_c3_id = puesto.id
        persona.tiene_propuesta_cambio = True
        persona.decision_final_c5 = DecisionFinal.PENDIENTE
        persona.observaciones_c3 = clean(observaciones) or None
    logger.info("C3 propone puesto %s para persona %s (usuario %s)", puesto_id, persona_id, user.id)
    return persona


def decision_final_c5(solicitud_id: int, decisiones: object, user: User) -> dict[str, object]:
    ensure_role(user, Rol.ANALISTA)
    if not isinstance(decisiones, list) or not decisiones:
        raise ValidationError("Debe enviar al menos una decision")

    with unit_of_work("Error al registrar la decision final"):
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        if solicitud.fase_actual not in {FaseSolicitud.VALIDADO_C3, FaseSolicitud.REVISION_PROPUESTA_C3}:
            raise ValidationError("La solicitud no tiene propuestas de C3 por resolver")
        personas = {persona.id: persona for persona in solicitud.personas}
        for item in decisiones:
            if not isinstance(item, dict):
                raise ValidationError("Decision invalida")
            persona = personas.get(parse_int(item.get("persona_id"), "persona_id"))
            if persona is None:
                raise ValidationError("La persona no pertenece a la solicitud")
            if not persona.tiene_propuesta_cambio or persona.rechazado:
                raise ValidationError(f"La persona {persona.id} no tiene propuesta de C3")
            if persona.decision_final_c5 != DecisionFinal.PENDIENTE:
                raise ValidationError(f"La persona {persona.id} ya tiene decision final")
            decision = clean(item.get("decision")).lower()
            if decision == DecisionFinal.PROPUESTA.value:
                persona.puesto_id = persona.puesto_propuesto_c3_id
                persona.decision_final_c5 = DecisionFinal.PROPUESTA
            elif decision == DecisionFinal.ORIGINAL.value:
                persona.decision_final_c5 = DecisionFinal.ORIGINAL
            else:
                raise ValidationError("Decision invalida (original o propuesta)")

        if solicitud.fase_actual == FaseSolicitud.VALIDADO_C3:
            _cambiar_fase(
                solicitud,
                FaseSolicitud.REVISION_PROPUESTA_C3,
                user,
                "Decision final C5 sobre propuestas de C3",
            )
        db.session.flush()
        pendientes = _propuestas_pendientes_count(solicitud.id)
    return {"solicitud": solicitud, "procesadas": len(decisiones), "pendientes": pendientes}


def avanzar_fase(solicitud_id: int, fase_destino: object, user: User, comentario: str = "") -> Solicitud:
    ensure_role(user, Rol.ANALISTA)
    destino = _parse_fase(fase_destino)
    if destino not in FASES_AVANCE:
        raise ValidationError(f"No se puede avanzar a la fase {destino.value}")

    with unit_of_work("Error al avanzar la solicitud"):
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        pendientes = _propuestas_pendientes_count(solicitud.id)
        if pendientes:
            raise ValidationError(
                f"Hay {pendientes} propuestas de C3 pendientes de decision final",
                data={"pendientes": pendientes},
            )
        _cambiar_fase(solicitud, destino, user, clean(comentario))
        for persona in solicitud.personas:
            if persona.rechazado:
                continue
            if destino == FaseSolicitud.FINALIZADO:
                _mover_persona(persona, FasePersona.FINALIZADO, solicitud)
            elif persona.fase_actual == FasePersona.VALIDADO_C3:
                _mover_persona(persona, FasePersona.EN_PROCESO, solicitud)
        if destino == FaseSolicitud.FINALIZADO:
            solicitud.fecha_finalizacion = utcnow()
    return solicitud


def rechazar_solicitud(
    solicitud_id: int,
    user: User,
    motivo_rechazo_id: object,
    observaciones: str = "",
    no_corresponde: bool = False,
) -> Solicitud:
    ensure_role(user, Rol.ANALISTA)
    observaciones = clean(observaciones)
    with unit_of_work("Error al rechazar la solicitud"):
        solicitud = _get_solicitud(solicitud_id, user, for_update=True)
        if solicitud.fase_actual in FASES_TERMINALES:
            raise ValidationError(f"La solicitud ya esta cerrada ({solicitud.fase_actual.value})")
        motivo = _get_motivo(motivo_rechazo_id)
        fase_previa = solicitud.fase_actual.value
        destino = FaseSolicitud.RECHAZADO_NO_CORRESPONDE if no_corresponde else FaseSolicitud.RECHAZADO
        _cambiar_fase(solicitud, destino, user, observaciones or motivo.descripcion)
        for persona in solicitud.personas:
            if persona.rechazado:
                continue
            persona.rechazado = True
            persona.motivo_rechazo_id = motivo.id
            persona.fase_actual = FasePersona.RECHAZADO
        _log_rechazo(user, motivo, fase_previa, observaciones, solicitud.id)
    return solicitud


def actualizar_solicitud(solicitud_id: int, payload: dict, user: User) -> Solicitud:
    ensure_role(user, Rol.ANALISTA, *ADMIN_ROLES)
    with unit_of_work("Error al actualizar la solicitud"):
        solicitud = _get_solicitud(solicitud_id, user)
        if solicitud.fase_actual not in EDITABLE_FASES:
            raise ValidationError("La solicitud ya no se puede editar en su fase actual")
        if "tipo_oficio_id" in payload:
            solicitud.tipo_oficio_id = parse_int(payload["tipo_oficio_id"], "tipo_oficio_id")
        if "municipio_id" in payload:
            municipio = db.session.get(Municipio, parse_int(payload["municipio_id"], "municipio_id"))
            if municipio is None:
                raise ValidationError("Municipio no encontrado")
            if is_region_scoped(user) and municipio.region_id != user.region_id:
                raise AuthorizationError("El municipio no pertenece a tu region")
            solicitud.municipio_id = municipio.id
        if "fecha_solicitud" in payload:
            solicitud.fecha_solicitud = parse_iso_date(payload["fecha_solicitud"], "fecha_solicitud")
        if "fecha_sello_c5" in payload:
            solicitud.fecha_sello_c5 = parse_optional_iso_date(payload["fecha_sello_c5"], "fecha_sello_c5")
        if "fecha_recibido_dt" in payload:
            solicitud.fecha_recibido_dt = parse_optional_iso_date(payload["fecha_recibido_dt"], "fecha_recibido_dt")
        if "termino" in payload:
            solicitud.termino = _parse_termino(payload["termino"])
        if "numero_personas" in payload:
            solicitud.numero_personas = _parse_numero_personas(payload["numero_personas"])
        if "dias_horas" in payload:
            solicitud.dias_horas = clean(payload["dias_horas"]) or None
        if "proceso_movimiento" in payload:
            solicitud.proceso_movimiento = clean(payload["proceso_movimiento"]) or "ALTA"
        for field in ("dependencia", "datos_institucionales", "observaciones"):
            if field in payload:
                setattr(solicitud, field, clean(payload[field]))
    logger.info("Solicitud %s actualizada por usuario %s", solicitud.numero_solicitud, user.id)
    return solicitud


def cambiar_estatus(solicitud_id: int, estatus_id: object, user: User, comentario: str = "") -> Solicitud:
    ensure_role(user, Rol.ANALISTA, *ADMIN_ROLES)
    with unit_of_work("Error al cambiar el estatus"):
        solicitud = _get_solicitud(solicitud_id, user)
        estatus = db.session.get(EstatusSolicitud, parse_int(estatus_id, "estatus_id"))
        if estatus is None:
            raise ValidationError("Estatus no encontrado")
        solicitud.estatus_id = estatus.id
        texto = clean(comentario)
        _registrar_historial(
            solicitud,
            user,
            solicitud.fase_actual,
            solicitud.fase_actual,
            f"Estatus cambiado a {estatus.nombre}" + (f": {texto}" if texto else ""),
        )
    logger.info("Solicitud %s: estatus %s (usuario %s)", solicitud.numero_solicitud, estatus.nombre, user.id)
    return solicitud


def eliminar_solicitud(solicitud_id: int, user: User) -> None:
    ensure_role(user, Rol.ANALISTA, *ADMIN_ROLES)
    with unit_of_work("Error al eliminar la solicitud") as session:
        solicitud = _get_solicitud(solicitud_id, user)
        if solicitud.fase_actual != FaseSolicitud.CREACION:
            raise ValidationError("Solo se pueden eliminar solicitudes en fase de creacion")
        numero = solicitud.numero_solicitud
        session.delete(solicitud)
    logger.info("Solicitud %s eliminada por usuario %s", numero, user.id)


def estadisticas(user: User) -> dict[str, object]:
    por_fase = db.session.execute(
        scope_to_region(
            select(Solicitud.fase_actual, func.count(Solicitud.id)).group_by(Solicitud.fase_actual),
            user,
        )
    ).all()
    por_estatus = db.session.execute(
        scope_to_region(
            select(EstatusSolicitud.nombre, func.count(Solicitud.id))
            .select_from(Solicitud)
            .join(EstatusSolicitud, Solicitud.estatus_id == EstatusSolicitud.id)
            .group_by(EstatusSolicitud.id, EstatusSolicitud.nombre),
            user,
        )
    ).all()
    personas_por_fase = db.session.execute(
        scope_to_region(
            select(Persona.fase_actual, func.count(Persona.id))
            .join(Solicitud, Persona.solicitud_id == Solicitud.id)
            .group_by(Persona.fase_actual),
            user,
        )
    ).all()
    return {
        "total": sum(count for _, count in por_fase),
        "por_fase": {fase.value: count for fase, count in por_fase},
        "por_estatus": {nombre: count for nombre, count in por_estatus},
        "personas_por_fase": {fase.value: count for fase, count in personas_por_fase},
    }


# Queries


def listar_solicitudes(user: User, filtros: dict | None = None) -> list[Solicitud]:
    filtros = filtros or {}
    stmt = scope_to_region(_solicitud_query(), user)
    if clean(filtros.get("fase")):
        stmt = stmt.where(Solicitud.fase_actual == _parse_fase(filtros["fase"]))
    estatus_id = parse_optional_int(filtros.get("estatus") or filtros.get("estatus_id"), "estatus")
    if estatus_id is not None:
        stmt = stmt.where(Solicitud.estatus_id == estatus_id)
    fecha_desde = parse_optional_iso_date(filtros.get("fecha_desde"), "fecha_desde")
    if fecha_desde:
        stmt = stmt.where(Solicitud.fecha_solicitud >= fecha_desde)
    fecha_hasta = parse_optional_iso_date(filtros.get("fecha_hasta"), "fecha_hasta")
    if fecha_hasta:
        stmt = stmt.where(Solicitud.fecha_solicitud <= fecha_hasta)
    busqueda = clean(filtros.get("busqueda"))
    if busqueda:
        pattern = f"%{busqueda}%"
        stmt = stmt.where(
            or_(Solicitud.numero_solicitud.ilike(pattern), Solicitud.dependencia.ilike(pattern))
        )
    limit = parse_optional_int(filtros.get("limit"), "limit") or 100
    stmt = stmt.order_by(Solicitud.created_at.desc(), Solicitud.id.desc()).limit(max(1, min(limit, 500)))
    return list(db.session.scalars(stmt))


def detalle_solicitud(solicitud_id: int, user: User) -> dict[str, object]:
    solicitud = db.session.scalar(_solicitud_query().where(Solicitud.id == solicitud_id))
    if solicitud is None or not can_see(solicitud, user):
        raise NotFoundError("Solicitud no encontrada")
    rechazos = list(
        db.session.scalars(
            select(Rechazo)
            .where(Rechazo.solicitud_id == solicitud.id)
            .options(joinedload(Rechazo.motivo), joinedload(Rechazo.usuario), joinedload(Rechazo.persona))
            .order_by(Rechazo.fecha_rechazo.desc(), Rechazo.id.desc())
        )
    )
    return {
        "solicitud": solicitud,
        "personas": list(solicitud.personas),
        "rechazos": rechazos,
        "historial": list(solicitud.historial),
        "conteo": conteo_personas(solicitud.id),
    }


def personas_de_solicitud(solicitud_id: int, user: User) -> list[Persona]:
    solicitud = _get_solicitud(solicitud_id, user)
    return list(solicitud.personas)


def bandeja_c3(user: User) -> list[tuple[Solicitud, dict[str, int]]]:
    ensure_role(user, *C3_READERS)
    stmt = scope_to_region(_solicitud_query(), user).where(Solicitud.fase_actual == FaseSolicitud.ENVIADO_C3)
    solicitudes = list(db.session.scalars(stmt.order_by(Solicitud.updated_at.asc(), Solicitud.id.asc())))
    conteos = _conteos_por_solicitud([s.id for s in solicitudes])
    return [(solicitud, conteos[solicitud.id]) for solicitud in solicitudes]


def validadas_c3(user: User) -> list[tuple[Solicitud, dict[str, int]]]:
    stmt = scope_to_region(_solicitud_query(), user).where(
        Solicitud.validado_c3.is_(True),
        Solicitud.fase_actual.in_(FASES_VALIDADAS_C3),
    )
    solicitudes = list(db.session.scalars(stmt.order_by(Solicitud.validado_c3_fecha.desc(), Solicitud.id.desc())))
    conteos = _conteos_por_solicitud([s.id for s in solicitudes])
    return [(solicitud, conteos[solicitud.id]) for solicitud in solicitudes]


def _personas_stats(solicitud_ids: list[int]) -> dict[int, dict[str, int]]:
    stats = {solicitud_id: {"total": 0, "validadas": 0, "rechazadas": 0} for solicitud_id in solicitud_ids}
    if not solicitud_ids:
        return stats
    validada = and_(Persona.validado_c5.is_(True), Persona.rechazado.is_(False))
    rows = db.session.execute(
        select(
            Persona.solicitud_id,
            func.count(Persona.id),
            func.coalesce(func.sum(case((validada, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Persona.rechazado.is_(True), 1), else_=0)), 0),
        )
        .where(Persona.solicitud_id.in_(solicitud_ids))
        .group_by(Persona.solicitud_id)
    ).all()
    for solicitud_id, total, validadas, rechazadas in rows:
        stats[solicitud_id] = {"total": int(total), "validadas": int(validadas), "rechazadas": int(rechazadas)}
    return stats


def historial_c3(
    user: User,
    solo_propias: bool = False,
    filtros: dict | None = None,
) -> list[tuple[Solicitud, dict[str, int]]]:
    """Requests already decided by C3, newest decision first.

    Filters: ``fecha_inicio``/``fecha_fin`` bound the decision date,
    ``busqueda`` matches number, dependencia or municipality name, and
    ``dictamen`` is one of ``validado_c3``, ``rechazado`` or
    ``rechazado_no_corresponde``.
    """
    ensure_role(user, *C3_READERS)
    filtros = filtros or {}
    stmt = scope_to_region(_solicitud_query(), user).where(Solicitud.usuario_validador_c3_id.is_not(None))
    if solo_propias:
        stmt = stmt.where(Solicitud.usuario_validador_c3_id == user.id)
    fecha_inicio = parse_optional_iso_date(filtros.get("fecha_inicio"), "fecha_inicio")
    if fecha_inicio:
        stmt = stmt.where(Solicitud.validado_c3_fecha >= datetime.combine(fecha_inicio, time.min))
    fecha_fin = parse_optional_iso_date(filtros.get("fecha_fin"), "fecha_fin")
    if fecha_fin:
        stmt = stmt.where(Solicitud.validado_c3_fecha < datetime.combine(fecha_fin + timedelta(days=1), time.min))
    busqueda = clean(filtros.get("busqueda"))
    if busqueda:
        pattern = f"%{busqueda}%"
        stmt = stmt.where(
            or_(
                Solicitud.numero_solicitud.ilike(pattern),
                Solicitud.dependencia.ilike(pattern),
                Solicitud.municipio_id.in_(select(Municipio.id).where(Municipio.nombre.ilike(pattern))),
            )
        )
    dictamen = clean(filtros.get("dictamen")).lower()
    if dictamen == FaseSolicitud.VALIDADO_C3.value:
        stmt = stmt.where(Solicitud.validado_c3.is_(True))
    elif dictamen in {fase.value for fase in FASES_RECHAZO}:
        stmt = stmt.where(Solicitud.fase_actual == FaseSolicitud(dictamen))
    elif dictamen:
        raise ValidationError("Dictamen invalido (validado_c3, rechazado o rechazado_no_corresponde)")
    solicitudes = list(db.session.scalars(stmt.order_by(Solicitud.validado_c3_fecha.desc(), Solicitud.id.desc())))
    stats = _personas_stats([s.id for s in solicitudes])
    return [(solicitud, stats[solicitud.id]) for solicitud in solicitudes]


def detalle_c3(solicitud_id: int, user: User) -> dict[str, object]:
    """Request detail for C3; only requests already submitted to C3 exist for it."""
    ensure_role(user, *C3_READERS)
    detalle = detalle_solicitud(solicitud_id, user)
    if FASE_RANGO.get(detalle["solicitud"].fase_actual, 0) < FASE_RANGO[FaseSolicitud.ENVIADO_C3] and (
        detalle["solicitud"].usuario_validador_c3_id is None
    ):
        raise NotFoundError("Solicitud no encontrada o no disponible para C3")
    return detalle


def _persona_query():
    return (
        select(Persona)
        .join(Solicitud, Persona.solicitud_id == Solicitud.id)
        .options(
            joinedload(Persona.solicitud),
            joinedload(Persona.puesto),
            joinedload(Persona.puesto_propuesto_c3),
            joinedload(Persona.motivo_rechazo),
        )
    )


def propuestas_pendientes(user: User) -> list[Persona]:
    stmt = scope_to_region(_persona_query(), user).where(
        Persona.tiene_propuesta_cambio.is_(True),
        Persona.decision_final_c5 == DecisionFinal.PENDIENTE,
        Persona.rechazado.is_(False),
    )
    return list(db.session.scalars(stmt.order_by(Persona.solicitud_id.asc(), Persona.id.asc())))


def _busqueda_persona(stmt, busqueda: str):
    pattern = f"%{busqueda}%"
    return stmt.where(
        or_(
            Persona.nombre.ilike(pattern),
            Persona.apellido_paterno.ilike(pattern),
            Persona.apellido_materno.ilike(pattern),
            Persona.curp.ilike(pattern),
            Solicitud.numero_solicitud.ilike(pattern),
        )
    )


def personas_pendientes_c3(user: User, filtros: dict | None = None) -> list[Persona]:
    """C3 inbox, one row per person awaiting the C3 dictamen."""
    ensure_role(user, *C3_READERS)
    filtros = filtros or {}
    stmt = scope_to_region(_persona_query(), user).where(
        Solicitud.fase_actual == FaseSolicitud.ENVIADO_C3,
        Persona.fase_actual == FasePersona.ENVIADO_C3,
        Persona.rechazado.is_(False),
    )
    busqueda = clean(filtros.get("busqueda"))
    if busqueda:
        stmt = _busqueda_persona(stmt, busqueda)
    return list(db.session.scalars(stmt.order_by(Solicitud.fecha_solicitud.asc(), Persona.id.asc())))


ESTATUS_PERSONA = ("validado", "rechazado", "pendiente")


def estatus_descriptivo(persona: Persona) -> str:
    if persona.rechazado:
        return "Rechazado"
    if persona.fase_actual == FasePersona.FINALIZADO:
        return "Finalizado"
    if persona.fase_actual == FasePersona.EN_PROCESO:
        return "En proceso"
    if persona.fase_actual == FasePersona.VALIDADO_C3:
        return "Aprobado por C3"
    if persona.fase_actual == FasePersona.ENVIADO_C3:
        return "Enviado a C3"
    if persona.validado_c5:
        return "Validado por C5"
    return "Pendiente de validacion"


def todas_personas_c5(user: User, filtros: dict | None = None) -> list[Persona]:
    """Every person across the analyst's visible requests, whatever its state."""
    ensure_role(user, Rol.ANALISTA)
    filtros = filtros or {}
    stmt = scope_to_region(_persona_query(), user)
    busqueda = clean(filtros.get("busqueda"))
    if busqueda:
        stmt = _busqueda_persona(stmt, busqueda)
    if clean(filtros.get("fase_tramite")):
        stmt = stmt.where(Solicitud.fase_actual == _parse_fase(filtros["fase_tramite"]))
    estatus = clean(filtros.get("estatus_persona")).lower()
    if estatus == "validado":
        stmt = stmt.where(Persona.validado_c5.is_(True), Persona.rechazado.is_(False))
    elif estatus == "rechazado":
        stmt = stmt.where(Persona.rechazado.is_(True))
    elif estatus == "pendiente":
        stmt = stmt.where(Persona.validado_c5.is_(False), Persona.rechazado.is_(False))
    elif estatus:
        raise ValidationError(f"estatus_persona invalido ({', '.join(ESTATUS_PERSONA)})")
    return list(db.session.scalars(stmt.order_by(Solicitud.id.desc(), Persona.id.asc())))


def personas_rechazadas(user: User, filtros: dict | None = None) -> list[Persona]:
    filtros = filtros or {}
    stmt = scope_to_region(_persona_query(), user).where(Persona.rechazado.is_(True))
    solicitud_id = parse_optional_int(filtros.get("solicitud_id"), "solicitud_id")
    if solicitud_id is not None:
        stmt = stmt.where(Persona.solicitud_id == solicitud_id)
    return list(db.session.scalars(stmt.order_by(Persona.updated_at.desc(), Persona.id.desc())))


def limpiar_tramites() -> dict[str, int]:
    """Delete every request with its persons, rejections and history."""
    with unit_of_work("Error al limpiar los tramites") as session:
        rechazos = session.execute(Rechazo.__table__.delete()).rowcount
        historial = session.execute(HistorialSolicitud.__table__.delete()).rowcount
        personas = session.execute(Persona.__table__.delete()).rowcount
        solicitudes = session.execute(Solicitud.__table__.delete()).rowcount
    logger.warning(
        "Limpieza de tramites: %s solicitudes, %s personas, %s rechazos, %s historial",
        solicitudes,
        personas,
        rechazos,
        historial,
    )
    return {"solicitudes": solicitudes, "personas": personas, "rechazos": rechazos, "historial": historial}


def parse_aprobacion(payload: dict) -> bool:
    """Read the approve/reject flag of a disposition body."""
    for key in ("aprobado", "aprobar", "validado"):
        if key in payload:
            return parse_bool(payload[key])
    decision = clean(payload.get("decision") or payload.get("dictamen")).lower()
    if decision in {"aprobado", "aprobar", "aprobada", "validado", "alta ok"}:
        return True
    if decision in {"rechazado", "rechazar", "rechazada", "no puede ser dado de alta"}:
        return False
    raise ValidationError("Falta la decision (aprobado: true/false)")
