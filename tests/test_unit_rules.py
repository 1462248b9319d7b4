from __future__ import annotations

from itertools import product

import pytest
from sqlalchemy import func, select

from app.core.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from app.core.extensions import db
from app.core.models import (
    DecisionFinal,
    FasePersona,
    FaseSolicitud,
    HistorialSolicitud,
    Persona,
    Rechazo,
    Solicitud,
    utcnow,
)
from app.tramites.services import (
    FASES_TERMINALES,
    SOLICITUD_TRANSITIONS,
    avanzar_fase,
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
    estatus_para_fase,
    historial_c3,
    limpiar_tramites,
    listar_solicitudes,
    parse_aprobacion,
    persona_en_orden,
    personas_pendientes_c3,
    propuestas_pendientes,
    proponer_puesto_c3,
    rechazar_solicitud,
    registrar_personas,
    todas_personas_c5,
)
from conftest import IZUCAR_MUNICIPIO_ID, curp_for, persona_payload, solicitud_payload


def _nueva_con_personas(get_user, n: int = 3, usuario: str = "demo_analista_puebla", **overrides):
    analista = get_user(usuario)
    solicitud = crear_solicitud(solicitud_payload(**overrides), analista)
    result = registrar_personas(solicitud.id, [persona_payload(i) for i in range(1, n + 1)], analista)
    return solicitud, result["personas"]


def _enviada_a_c3(get_user, motivo: int, n: int = 3, aprobadas: int = 3):
    analista = get_user("demo_analista_puebla")
    solicitud, personas = _nueva_con_personas(get_user, n=n)
    for idx, persona in enumerate(personas):
        if idx < aprobadas:
            disponer_persona_c5(persona.id, True, analista)
        else:
            disponer_persona_c5(persona.id, False, analista, motivo_rechazo_id=motivo)
    enviar_a_c3(solicitud.id, analista)
    return solicitud, personas


def _rechazos(solicitud_id: int, solo_solicitud: bool = False) -> int:
    stmt = select(func.count(Rechazo.id)).where(Rechazo.solicitud_id == solicitud_id)
    if solo_solicitud:
        stmt = stmt.where(Rechazo.persona_id.is_(None))
    return db.session.scalar(stmt)


def test_numero_solicitud_secuencial_por_anio(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        primera = crear_solicitud(solicitud_payload(), analista)
        segunda = crear_solicitud(solicitud_payload(), analista)
        anterior = crear_solicitud(solicitud_payload(fecha_solicitud="2025-12-31"), analista)

        assert primera.numero_solicitud == "SACC5I-2026-000001"
        assert segunda.numero_solicitud == "SACC5I-2026-000002"
        assert anterior.numero_solicitud == "SACC5I-2025-000001"
        assert primera.fase_actual == FaseSolicitud.CREACION
        assert primera.estatus_id == 1
        assert primera.usuario_id == analista.id

        historial = db.session.scalars(
            select(HistorialSolicitud).where(HistorialSolicitud.solicitud_id == primera.id)
        ).all()
        assert len(historial) == 1
        assert historial[0].fase_anterior is None
        assert historial[0].fase_nueva == "creacion"


def test_crear_solicitud_requires_analyst_and_fecha(app, get_user):
    with app.app_context():
        with pytest.raises(AuthorizationError):
            crear_solicitud(solicitud_payload(), get_user("demo_validador_c3"))
        with pytest.raises(ValidationError, match="Falta fecha_solicitud"):
            crear_solicitud(solicitud_payload(fecha_solicitud=""), get_user("demo_analista_puebla"))
        with pytest.raises(ValidationError, match="Termino invalido"):
            crear_solicitud(solicitud_payload(termino="Urgente"), get_user("demo_analista_puebla"))
        assert db.session.scalar(select(func.count(Solicitud.id))) == 0


def test_crear_solicitud_unknown_municipio_is_store_error(app, get_user):
    with app.app_context():
        with pytest.raises(StorageError):
            crear_solicitud(solicitud_payload(municipio_id=9999), get_user("demo_analista_puebla"))
        assert db.session.scalar(select(func.count(Solicitud.id))) == 0


def test_crear_solicitud_rejects_municipio_outside_region(app, get_user):
    with app.app_context():
        with pytest.raises(AuthorizationError, match="no pertenece a tu region"):
            crear_solicitud(solicitud_payload(municipio_id=IZUCAR_MUNICIPIO_ID), get_user("demo_analista_puebla"))
        with pytest.raises(AuthorizationError):
            crear_solicitud(solicitud_payload(), get_user("demo_analista_sin_region"))
        assert db.session.scalar(select(func.count(Solicitud.id))) == 0

        propia = crear_solicitud(solicitud_payload(municipio_id=IZUCAR_MUNICIPIO_ID), get_user("demo_analista_izucar"))
        assert propia.municipio_id == IZUCAR_MUNICIPIO_ID


def test_registrar_personas_moves_request_to_validacion_previa(app, get_user):
    with app.app_context():
        solicitud, personas = _nueva_con_personas(get_user, n=3)

        assert len(personas) == 3
        assert solicitud.fase_actual == FaseSolicitud.VALIDACION_PREVIA_C5
        assert solicitud.estatus_id == 2
        assert all(p.fase_actual == FasePersona.CAPTURA for p in personas)
        assert all(not p.validado_c5 and not p.rechazado for p in personas)


def test_registrar_personas_rejects_whole_batch_on_invalid_record(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        solicitud = crear_solicitud(solicitud_payload(), analista)
        lote = [
            persona_payload(1),
            persona_payload(2, curp="NOVALIDO"),
            persona_payload(3, sexo="X"),
            persona_payload(4, curp=curp_for(1)),
        ]

        with pytest.raises(ValidationError) as excinfo:
            registrar_personas(solicitud.id, lote, analista)

        errores = excinfo.value.data["errores"]
        assert [error["indice"] for error in errores] == [1, 2, 3]
        assert "CURP duplicado" in errores[2]["mensaje"]
        assert db.session.scalar(select(func.count(Persona.id))) == 0
        assert solicitud.fase_actual == FaseSolicitud.CREACION


def test_registrar_personas_duplicate_curp_across_batches_rolls_back(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        solicitud, _ = _nueva_con_personas(get_user, n=1)

        with pytest.raises(StorageError):
            registrar_personas(
                solicitud.id,
                [persona_payload(2), persona_payload(3, curp=curp_for(1))],
                analista,
            )

        assert db.session.scalar(select(func.count(Persona.id))) == 1


def test_registrar_personas_reports_positions_outside_municipal_competence(app, get_user, puesto_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        custodio = puesto_id("Custodio")
        solicitud = crear_solicitud(solicitud_payload(), analista)
        result = registrar_personas(
            solicitud.id,
            [persona_payload(1, puesto_id=puesto_id()), persona_payload(2, puesto_id=custodio)],
            analista,
        )

        no_competencia = result["puestos_no_competencia"]
        assert len(no_competencia) == 1
        assert no_competencia[0]["puesto"] == "Custodio"
        assert no_competencia[0]["motivo"]
        assert all(p.fase_actual == FasePersona.CAPTURA for p in result["personas"])


def test_envio_a_c3_blocked_while_persons_undecided(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=3)
        disponer_persona_c5(personas[0].id, True, analista)
        disponer_persona_c5(personas[1].id, True, analista)

        with pytest.raises(ValidationError) as excinfo:
            enviar_a_c3(solicitud.id, analista)

        assert excinfo.value.message == "Faltan personas por validar. Total: 3, Validadas: 2, Rechazadas: 0"
        assert excinfo.value.data == {"total": 3, "validadas": 2, "rechazadas": 0}
        assert solicitud.fase_actual == FaseSolicitud.VALIDACION_PREVIA_C5
        assert personas[0].fase_actual == FasePersona.VALIDACION_C5
        assert personas[2].fase_actual == FasePersona.CAPTURA


def test_envio_a_c3_requires_one_approved_person(app, get_user, motivo_id):
    with app.app_context():
        motivo = motivo_id()
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=2)
        for persona in personas:
            disponer_persona_c5(persona.id, False, analista, motivo_rechazo_id=motivo)

        with pytest.raises(ValidationError, match="No hay personas aprobadas"):
            enviar_a_c3(solicitud.id, analista)
        assert solicitud.fase_actual == FaseSolicitud.VALIDACION_PREVIA_C5


@pytest.mark.parametrize("disposiciones", list(product((None, True, False), repeat=3)))
def test_envio_a_c3_gate_matches_dispositions(app, get_user, motivo_id, disposiciones):
    with app.app_context():
        motivo = motivo_id()
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=3)
        for persona, aprobar in zip(personas, disposiciones):
            if aprobar is True:
                disponer_persona_c5(persona.id, True, analista)
            elif aprobar is False:
                disponer_persona_c5(persona.id, False, analista, motivo_rechazo_id=motivo)

        if None not in disposiciones and True in disposiciones:
            conteo = enviar_a_c3(solicitud.id, analista)
            assert conteo["validadas"] == disposiciones.count(True)
            assert solicitud.fase_actual == FaseSolicitud.ENVIADO_C3
        else:
            with pytest.raises(ValidationError):
                enviar_a_c3(solicitud.id, analista)
            assert solicitud.fase_actual == FaseSolicitud.VALIDACION_PREVIA_C5


def test_envio_a_c3_moves_only_approved_persons(app, get_user, motivo_id):
    with app.app_context():
        solicitud, personas = _enviada_a_c3(get_user, motivo_id(), n=5, aprobadas=3)

        fases = [p.fase_actual for p in personas]
        assert fases.count(FasePersona.ENVIADO_C3) == 3
        assert fases.count(FasePersona.RECHAZADO) == 2
        assert solicitud.fase_actual == FaseSolicitud.ENVIADO_C3
        assert solicitud.estatus_id == 3
        assert all(persona_en_orden(p, solicitud) for p in personas)


def test_rejecting_a_person_twice_keeps_a_single_audit_row(app, get_user, motivo_id):
    with app.app_context():
        motivo = motivo_id("VAL_C5_002")
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=2)
        disponer_persona_c5(personas[0].id, False, analista, motivo_rechazo_id=motivo, observaciones="CURP no coincide")

        with pytest.raises(ValidationError, match="ya fue rechazada"):
            disponer_persona_c5(personas[0].id, False, analista, motivo_rechazo_id=motivo)
        with pytest.raises(ValidationError, match="ya fue rechazada"):
            disponer_persona_c5(personas[0].id, True, analista)

        rechazo = db.session.scalars(select(Rechazo).where(Rechazo.persona_id == personas[0].id)).one()
        assert rechazo.fase_rechazo == "validacion_previa"
        assert rechazo.observaciones == "CURP no coincide"
        assert rechazo.rechazado_por == analista.id
        assert personas[0].motivo_rechazo_id == motivo


def test_person_rejection_requires_motivo(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        _, personas = _nueva_con_personas(get_user, n=1)

        with pytest.raises(ValidationError, match="motivo de rechazo es obligatorio"):
            disponer_persona_c5(personas[0].id, False, analista)
        with pytest.raises(ValidationError, match="Motivo de rechazo no valido"):
            disponer_persona_c5(personas[0].id, False, analista, motivo_rechazo_id=9999)
        assert personas[0].rechazado is False


def test_dictamen_c3_approval(app, get_user, motivo_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        solicitud, personas = _enviada_a_c3(get_user, motivo_id(), n=5, aprobadas=3)

        dictamen_c3(solicitud.id, True, validador, observaciones="Documentacion correcta")

        assert solicitud.fase_actual == FaseSolicitud.VALIDADO_C3
        assert solicitud.estatus_id == 4
        assert solicitud.validado_c3 is True
        assert solicitud.validado_c3_fecha is not None
        assert solicitud.usuario_validador_c3_id == validador.id
        fases = [p.fase_actual for p in personas]
        assert fases.count(FasePersona.VALIDADO_C3) == 3
        assert fases.count(FasePersona.RECHAZADO) == 2
        assert _rechazos(solicitud.id) == 2


def test_dictamen_c3_rejection_writes_one_request_level_audit_row(app, get_user, motivo_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        solicitud, personas = _enviada_a_c3(get_user, motivo_id(), n=4, aprobadas=3)

        dictamen_c3(
            solicitud.id,
            False,
            validador,
            observaciones="No cumple",
            motivo_rechazo_id=motivo_id("VAL_C3_001"),
        )

        assert solicitud.fase_actual == FaseSolicitud.RECHAZADO
        assert solicitud.estatus_id == 5
        assert solicitud.validado_c3 is False
        assert all(p.rechazado and p.fase_actual == FasePersona.RECHAZADO for p in personas)
        assert _rechazos(solicitud.id, solo_solicitud=True) == 1
        assert _rechazos(solicitud.id) == 2
        fila = db.session.scalars(
            select(Rechazo).where(Rechazo.solicitud_id == solicitud.id, Rechazo.persona_id.is_(None))
        ).one()
        assert fila.fase_rechazo == "validacion_c3"


def test_dictamen_c3_guards(app, get_user, motivo_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        validador = get_user("demo_validador_c3")
        solicitud, _ = _enviada_a_c3(get_user, motivo_id())

        with pytest.raises(AuthorizationError):
            dictamen_c3(solicitud.id, True, analista)
        with pytest.raises(ValidationError, match="obligatorio"):
            dictamen_c3(solicitud.id, False, validador)
        assert solicitud.fase_actual == FaseSolicitud.ENVIADO_C3
        assert _rechazos(solicitud.id) == 0


def test_rejected_request_is_terminal(app, get_user, motivo_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        validador = get_user("demo_validador_c3")
        motivo = motivo_id("VAL_C3_002")
        solicitud, _ = _enviada_a_c3(get_user, motivo_id())
        dictamen_c3(solicitud.id, False, validador, motivo_rechazo_id=motivo)

        with pytest.raises(ValidationError):
            avanzar_fase(solicitud.id, "en_revision", analista)
        with pytest.raises(ValidationError):
            rechazar_solicitud(solicitud.id, analista, motivo)
        with pytest.raises(ValidationError):
            dictamen_c3(solicitud.id, True, validador)
        assert solicitud.fase_actual == FaseSolicitud.RECHAZADO
        assert _rechazos(solicitud.id) == 1


def test_rechazar_solicitud_no_corresponde(app, get_user, motivo_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=2)

        rechazar_solicitud(
            solicitud.id,
            analista,
            motivo_id("OTRO_001"),
            observaciones="Corresponde a otra instancia",
            no_corresponde=True,
        )

        assert solicitud.fase_actual == FaseSolicitud.RECHAZADO_NO_CORRESPONDE
        assert solicitud.estatus_id == 5
        assert all(p.fase_actual == FasePersona.RECHAZADO for p in personas)
        fila = db.session.scalars(select(Rechazo).where(Rechazo.solicitud_id == solicitud.id)).one()
        assert fila.persona_id is None
        assert fila.fase_rechazo == "validacion_previa_c5"


def test_propuesta_c3_and_final_decision_flow(app, get_user, motivo_id, puesto_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        validador = get_user("demo_validador_c3")
        preventivo = puesto_id("Policía Preventivo")
        solicitud, personas = _enviada_a_c3(get_user, motivo_id(), n=3, aprobadas=3)

        proponer_puesto_c3(personas[0].id, preventivo, validador, observaciones="Perfil preventivo")
        dictamen_c3(solicitud.id, True, validador)

        assert [p.id for p in propuestas_pendientes(analista)] == [personas[0].id]
        with pytest.raises(ValidationError) as excinfo:
            avanzar_fase(solicitud.id, "en_revision", analista)
        assert excinfo.value.data == {"pendientes": 1}

        result = decision_final_c5(
            solicitud.id,
            [{"persona_id": personas[0].id, "decision": "propuesta"}],
            analista,
        )
        assert result["pendientes"] == 0
        assert solicitud.fase_actual == FaseSolicitud.REVISION_PROPUESTA_C3
        assert personas[0].puesto_id == preventivo
        assert personas[0].decision_final_c5 == DecisionFinal.PROPUESTA
        assert propuestas_pendientes(analista) == []

        with pytest.raises(ValidationError, match="ya tiene decision final"):
            decision_final_c5(solicitud.id, [{"persona_id": personas[0].id, "decision": "original"}], analista)

        avanzar_fase(solicitud.id, "en_revision", analista, comentario="Inicia revision")
        assert solicitud.estatus_id == 2
        assert all(p.fase_actual == FasePersona.EN_PROCESO for p in personas)

        avanzar_fase(solicitud.id, "finalizado", analista)
        assert solicitud.fase_actual == FaseSolicitud.FINALIZADO
        assert solicitud.estatus_id == 6
        assert solicitud.fecha_finalizacion is not None
        assert all(p.fase_actual == FasePersona.FINALIZADO for p in personas)
        assert all(persona_en_orden(p, solicitud) for p in personas)

        with pytest.raises(ValidationError, match="Transicion invalida"):
            avanzar_fase(solicitud.id, "consulta_sim", analista)


def test_propuesta_c3_only_for_persons_sent_to_c3(app, get_user, motivo_id, puesto_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        analista = get_user("demo_analista_puebla")
        solicitud, personas = _nueva_con_personas(get_user, n=1)

        with pytest.raises(ValidationError, match="enviadas a C3"):
            proponer_puesto_c3(personas[0].id, puesto_id(), validador)
        with pytest.raises(AuthorizationError):
            proponer_puesto_c3(personas[0].id, puesto_id(), analista)


def test_avanzar_fase_is_forward_only(app, get_user, motivo_id):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        validador = get_user("demo_validador_c3")
        solicitud, _ = _enviada_a_c3(get_user, motivo_id())
        dictamen_c3(solicitud.id, True, validador)

        with pytest.raises(ValidationError, match="No se puede avanzar"):
            avanzar_fase(solicitud.id, "enviado_c3", analista)
        with pytest.raises(ValidationError, match="Fase invalida"):
            avanzar_fase(solicitud.id, "archivado", analista)

        avanzar_fase(solicitud.id, "antecedentes_suic", analista)
        with pytest.raises(ValidationError, match="Transicion invalida: antecedentes_suic -> en_revision"):
            avanzar_fase(solicitud.id, "en_revision", analista)
        assert solicitud.fase_actual == FaseSolicitud.ANTECEDENTES_SUIC

        historial = detalle_solicitud(solicitud.id, analista)["historial"]
        assert historial[-1].fase_anterior == "validado_c3"
        assert historial[-1].fase_nueva == "antecedentes_suic"


def test_region_scoping_for_analysts(app, get_user):
    with app.app_context():
        puebla = get_user("demo_analista_puebla")
        izucar = get_user("demo_analista_izucar")
        sin_region = get_user("demo_analista_sin_region")
        admin = get_user("demo_admin")
        de_puebla = crear_solicitud(solicitud_payload(), puebla)
        de_izucar = crear_solicitud(solicitud_payload(municipio_id=IZUCAR_MUNICIPIO_ID), izucar)

        assert [s.id for s in listar_solicitudes(puebla)] == [de_puebla.id]
        assert [s.id for s in listar_solicitudes(izucar)] == [de_izucar.id]
        assert listar_solicitudes(sin_region) == []
        assert {s.id for s in listar_solicitudes(admin)} == {de_puebla.id, de_izucar.id}
        assert estadisticas(sin_region)["total"] == 0
        assert estadisticas(admin)["total"] == 2

        with pytest.raises(NotFoundError):
            detalle_solicitud(de_puebla.id, izucar)
        with pytest.raises(NotFoundError):
            detalle_solicitud(de_puebla.id, sin_region)
        with pytest.raises(NotFoundError):
            registrar_personas(de_puebla.id, [persona_payload(1)], izucar)


def test_eliminar_solicitud_only_in_creacion(app, get_user):
    with app.app_context():
        analista = get_user("demo_analista_puebla")
        borrador = crear_solicitud(solicitud_payload(), analista)
        borrador_id = borrador.id
        eliminar_solicitud(borrador_id, analista)
        assert db.session.get(Solicitud, borrador_id) is None

        solicitud, _ = _nueva_con_personas(get_user, n=1)
        with pytest.raises(ValidationError, match="fase de creacion"):
            eliminar_solicitud(solicitud.id, analista)


def test_limpiar_tramites_removes_every_request(app, get_user, motivo_id):
    with app.app_context():
        _enviada_a_c3(get_user, motivo_id(), n=3, aprobadas=2)

        summary = limpiar_tramites()

        assert summary["solicitudes"] == 1
        assert summary["personas"] == 3
        assert summary["rechazos"] == 1
        assert db.session.scalar(select(func.count(Persona.id))) == 0


def test_transition_table_and_status_mapping():
    for fase in FASES_TERMINALES:
        assert SOLICITUD_TRANSITIONS[fase] == set()
    for fase, destinos in SOLICITUD_TRANSITIONS.items():
        if fase not in FASES_TERMINALES:
            assert FaseSolicitud.RECHAZADO in destinos
            assert FaseSolicitud.RECHAZADO_NO_CORRESPONDE in destinos
    assert FaseSolicitud.CREACION not in SOLICITUD_TRANSITIONS[FaseSolicitud.EN_REVISION]

    assert estatus_para_fase(FaseSolicitud.CREACION) == 1
    assert estatus_para_fase(FaseSolicitud.VALIDACION_PREVIA_C5) == 2
    assert estatus_para_fase(FaseSolicitud.ENVIADO_C3) == 3
    assert estatus_para_fase(FaseSolicitud.VALIDADO_C3) == 4
    assert estatus_para_fase(FaseSolicitud.RECHAZADO_NO_CORRESPONDE) == 5
    assert estatus_para_fase(FaseSolicitud.FINALIZADO) == 6
    assert estatus_para_fase(FaseSolicitud.CONSULTA_SIM) == 2


def test_parse_aprobacion_variants():
    assert parse_aprobacion({"aprobado": True}) is True
    assert parse_aprobacion({"aprobar": "false"}) is False
    assert parse_aprobacion({"decision": "Rechazado"}) is False
    assert parse_aprobacion({"dictamen": "aprobada"}) is True
    assert parse_aprobacion({"dictamen": "ALTA OK"}) is True
    assert parse_aprobacion({"decision": "NO PUEDE SER DADO DE ALTA"}) is False
    with pytest.raises(ValidationError):
        parse_aprobacion({})
    with pytest.raises(ValidationError):
        parse_aprobacion({"dictamen": "tal vez"})


def test_historial_c3_filters_and_person_stats(app, get_user, motivo_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        aprobada, _ = _enviada_a_c3(get_user, motivo_id(), n=3, aprobadas=2)
        rechazada, _ = _enviada_a_c3(get_user, motivo_id(), n=2, aprobadas=2)
        pendiente, _ = _enviada_a_c3(get_user, motivo_id(), n=1, aprobadas=1)
        dictamen_c3(aprobada.id, True, validador)
        dictamen_c3(rechazada.id, False, validador, motivo_rechazo_id=motivo_id("VAL_C3_001"))

        filas = dict((s.id, stats) for s, stats in historial_c3(validador))
        assert set(filas) == {aprobada.id, rechazada.id}
        assert filas[aprobada.id] == {"total": 3, "validadas": 2, "rechazadas": 1}
        assert filas[rechazada.id] == {"total": 2, "validadas": 0, "rechazadas": 2}
        assert pendiente.id not in filas

        def ids(**filtros):
            return [s.id for s, _ in historial_c3(validador, filtros=filtros)]

        assert ids(dictamen="validado_c3") == [aprobada.id]
        assert ids(dictamen="rechazado") == [rechazada.id]
        assert ids(dictamen="rechazado_no_corresponde") == []
        hoy = utcnow().date().isoformat()
        assert set(ids(fecha_inicio=hoy, fecha_fin=hoy)) == {aprobada.id, rechazada.id}
        assert ids(fecha_inicio="2099-01-01") == []
        assert ids(fecha_fin="2000-01-01") == []
        assert set(ids(busqueda="puebla")) == {aprobada.id, rechazada.id}
        assert ids(busqueda=aprobada.numero_solicitud) == [aprobada.id]
        with pytest.raises(ValidationError, match="Dictamen invalido"):
            historial_c3(validador, filtros={"dictamen": "pendiente"})
        with pytest.raises(ValidationError):
            historial_c3(validador, filtros={"fecha_inicio": "19-10-2026"})
        with pytest.raises(AuthorizationError):
            historial_c3(get_user("demo_analista_puebla"))


def test_personas_pendientes_c3_lists_persons_awaiting_dictamen(app, get_user, motivo_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        solicitud, personas = _enviada_a_c3(get_user, motivo_id(), n=3, aprobadas=2)
        _nueva_con_personas(get_user, n=2)

        pendientes = personas_pendientes_c3(validador)
        assert [p.id for p in pendientes] == [personas[0].id, personas[1].id]
        assert all(estatus_descriptivo(p) == "Enviado a C3" for p in pendientes)
        assert [p.id for p in personas_pendientes_c3(validador, {"busqueda": "persona2"})] == [personas[1].id]
        assert personas_pendientes_c3(validador, {"busqueda": "sin coincidencia"}) == []
        with pytest.raises(AuthorizationError):
            personas_pendientes_c3(get_user("demo_analista_puebla"))

        dictamen_c3(solicitud.id, True, validador)
        assert personas_pendientes_c3(validador) == []


def test_todas_personas_c5_filters_and_region_scope(app, get_user, motivo_id):
    with app.app_context():
        puebla = get_user("demo_analista_puebla")
        izucar = get_user("demo_analista_izucar")
        enviada, personas = _enviada_a_c3(get_user, motivo_id(), n=3, aprobadas=2)
        _, capturadas = _nueva_con_personas(get_user, n=1)
        _, ajenas = _nueva_con_personas(
            get_user, n=1, usuario="demo_analista_izucar", municipio_id=IZUCAR_MUNICIPIO_ID
        )

        todas = todas_personas_c5(puebla)
        assert {p.id for p in todas} == {p.id for p in personas + capturadas}
        assert [p.id for p in todas_personas_c5(izucar)] == [ajenas[0].id]
        assert todas_personas_c5(get_user("demo_analista_sin_region")) == []

        def ids(**filtros):
            return {p.id for p in todas_personas_c5(puebla, filtros)}

        assert ids(estatus_persona="validado") == {personas[0].id, personas[1].id}
        assert ids(estatus_persona="rechazado") == {personas[2].id}
        assert ids(estatus_persona="pendiente") == {capturadas[0].id}
        assert ids(fase_tramite="enviado_c3") == {p.id for p in personas}
        assert ids(fase_tramite="enviado_c3", estatus_persona="rechazado") == {personas[2].id}
        assert ids(busqueda=enviada.numero_solicitud) == {p.id for p in personas}

        assert estatus_descriptivo(personas[0]) == "Enviado a C3"
        assert estatus_descriptivo(personas[2]) == "Rechazado"
        assert estatus_descriptivo(capturadas[0]) == "Pendiente de validacion"

        with pytest.raises(ValidationError, match="estatus_persona invalido"):
            todas_personas_c5(puebla, {"estatus_persona": "borrado"})
        with pytest.raises(ValidationError):
            todas_personas_c5(puebla, {"fase_tramite": "archivado"})
        with pytest.raises(AuthorizationError):
            todas_personas_c5(get_user("demo_validador_c3"))


def test_detalle_c3_only_for_requests_submitted_to_c3(app, get_user, motivo_id):
    with app.app_context():
        validador = get_user("demo_validador_c3")
        enviada, _ = _enviada_a_c3(get_user, motivo_id(), n=2, aprobadas=2)
        borrador, _ = _nueva_con_personas(get_user, n=1)

        detalle = detalle_c3(enviada.id, validador)
        assert detalle["solicitud"].id == enviada.id
        assert len(detalle["personas"]) == 2

        with pytest.raises(NotFoundError, match="no disponible para C3"):
            detalle_c3(borrador.id, validador)
        with pytest.raises(AuthorizationError):
            detalle_c3(enviada.id, get_user("demo_analista_puebla"))

        dictamen_c3(enviada.id, False, validador, motivo_rechazo_id=motivo_id("VAL_C3_001"))
        assert detalle_c3(enviada.id, validador)["solicitud"].fase_actual == FaseSolicitud.RECHAZADO
