from __future__ import annotations

import logging

import click
from flask import Flask, g
from sqlalchemy import select

from app.admin import admin_bp
from app.catalogos import catalogos_bp
from app.core.auth import auth_bp
from app.core.config import Config
from app.core.errors import AuthError, register_error_handlers
from app.core.extensions import db, login_manager, migrate
from app.core.identity import INVALID_TOKEN, resolve
from app.core.models import Region, User, seed_catalogos, seed_demo_data
from app.core.utils import ok
from app.tramites import solicitudes_bp, tramites_bp

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.json.ensure_ascii = False

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    register_error_handlers(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(tramites_bp)
    app.register_blueprint(solicitudes_bp)
    app.register_blueprint(catalogos_bp)
    app.register_blueprint(admin_bp)

    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return ok(
            message="API SACC5i",
            endpoints={
                "auth": "/api/auth",
                "tramites": "/api/tramites/alta",
                "solicitudes": "/api/solicitudes",
                "catalogos": "/api/catalogos",
                "admin": "/api/admin",
                "health": "/api/health",
            },
        )

    @app.get("/api/health")
    def health():
        return ok(message="API SACC5i funcionando", environment=app.config.get("APP_ENV"))


def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db() -> None:
        """Create all tables."""
        db.create_all()
        click.echo("Tablas creadas.")

    @app.cli.command("seed-catalogos")
    def seed_catalogos_command() -> None:
        """Load regions, municipalities and the other reference catalogs."""
        seed_catalogos(db.session)
        db.session.commit()
        click.echo("Catalogos cargados.")

    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed catalogs and demo accounts."""
        if reset:
            db.drop_all()
            db.create_all()
        if reset or db.session.scalar(select(Region.id).limit(1)) is None:
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing catalogs found.")

    @app.cli.command("limpiar-tramites")
    @click.option("--yes", is_flag=True, help="Confirm deletion of every request.")
    def limpiar_tramites_command(yes: bool) -> None:
        """Delete every request with its persons, rejections and history."""
        from app.tramites.services import limpiar_tramites

        if not yes:
            raise click.UsageError("Operacion destructiva: repite con --yes para confirmar.")
        summary = limpiar_tramites()
        click.echo(
            f"Eliminados: solicitudes={summary['solicitudes']} personas={summary['personas']} "
            f"rechazos={summary['rechazos']} historial={summary['historial']}"
        )


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(req) -> User | None:
    scheme, _, token = req.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    g.auth_token_presented = True
    try:
        user_id = resolve(token.strip())
    except AuthError:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.activo:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    if g.get("auth_token_presented"):
        raise AuthError(INVALID_TOKEN)
    raise AuthError()
