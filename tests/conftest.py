from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import select

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app import create_app
from app.core.catalog_data import DEMO_USERS
from app.core.config import Config
from app.core.extensions import db
from app.core.models import MotivoRechazo, Puesto, User, seed_demo_data

DEMO_PASSWORDS = {usuario: extension for usuario, _, extension, *_ in DEMO_USERS}

PUEBLA_MUNICIPIO_ID = 114
IZUCAR_MUNICIPIO_ID = 85


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    JWT_SECRET = "test-jwt-secret"
    NUMERO_SOLICITUD_PREFIX = "SACC5I"
    APP_ENV = "test"
    LOG_LEVEL = "WARNING"


def curp_for(idx: int) -> str:
    return f"PERE9001{idx % 100:02d}HPLRRN{(idx // 10) % 10}{idx % 10}"


def persona_payload(idx: int, **overrides) -> dict[str, object]:
    payload: dict[str, object] = {
        "nombre": f"Persona{idx}",
        "apellido_paterno": "Demo",
        "apellido_materno": "Prueba",
        "curp": curp_for(idx),
        "fecha_nacimiento": "1990-01-15",
        "sexo": "M" if idx % 2 else "F",
        "telefono": "2220000000",
        "numero_oficio_c3": f"CECSNSP/DGCECC/{idx:04d}/2026",
    }
    payload.update(overrides)
    return payload


def solicitud_payload(**overrides) -> dict[str, object]:
    payload: dict[str, object] = {
        "tipo_oficio_id": 1,
        "municipio_id": PUEBLA_MUNICIPIO_ID,
        "fecha_solicitud": "2026-01-20",
        "dependencia": "Seguridad Publica Municipal",
        "numero_personas": 3,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
    # Requests must push their own context so g and the session are per request.
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def get_user(app):
    def _get_user(usuario: str) -> User:
        return db.session.scalar(select(User).where(User.usuario == usuario))

    return _get_user


@pytest.fixture
def motivo_id(app):
    def _motivo(codigo: str = "VAL_C5_001") -> int:
        with app.app_context():
            return db.session.scalar(select(MotivoRechazo.id).where(MotivoRechazo.codigo == codigo))

    return _motivo


@pytest.fixture
def puesto_id(app):
    def _puesto(nombre: str = "Policía Municipal") -> int:
        with app.app_context():
            return db.session.scalar(select(Puesto.id).where(Puesto.nombre == nombre))

    return _puesto


@pytest.fixture
def login(client):
    def _login(usuario: str, password: str | None = None):
        return client.post(
            "/api/auth/login",
            json={"usuario": usuario, "password": password or DEMO_PASSWORDS[usuario]},
        )

    return _login


@pytest.fixture
def auth_headers(login):
    def _headers(usuario: str) -> dict[str, str]:
        response = login(usuario)
        assert response.status_code == 200, response.get_json()
        return {"Authorization": f"Bearer {response.get_json()['data']['token']}"}

    return _headers
