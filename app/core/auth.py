from __future__ import annotations

import logging
import re

from flask import Blueprint
from flask_login import login_required
from sqlalchemy import select

from app.core.errors import AuthError, ValidationError
from app.core.identity import authenticate, hash_secret, issue, verify_secret
from app.core.models import Rol, User
from app.core.permissions import current_actor
from app.core.serializers import user_to_dict
from app.core.storage import unit_of_work
from app.core.utils import clean, json_payload, ok

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

PASSWORD_WARNING = "Por seguridad, se recomienda cambiar tu contraseña temporal"
_USUARIO_PATTERN = re.compile(r"^[a-zA-Z0-9_.]{3,50}$")


def _validate_new_password(password: str) -> str:
    if len(password or "") < 6:
        raise ValidationError("La contraseña debe tener al menos 6 caracteres")
    return password


@auth_bp.post("/login")
def login():
    payload = json_payload()
    handle = clean(payload.get("usuario") or payload.get("username"))
    password = payload.get("password") or ""
    if not handle or not password:
        raise ValidationError("Usuario y contraseña son requeridos")
    user = authenticate(handle, password)
    data = user_to_dict(user)
    data["token"] = issue(user)
    logger.info("Inicio de sesion de usuario %s", user.id)
    return ok(
        data=data,
        message="Inicio de sesión exitoso",
        warning=None if user.password_changed else PASSWORD_WARNING,
    )


@auth_bp.post("/register")
def register():
    payload = json_payload()
    nombre_completo = clean(payload.get("nombre_completo"))
    usuario = clean(payload.get("usuario"))
    if len(nombre_completo) < 3:
        raise ValidationError("El nombre completo debe tener al menos 3 caracteres")
    if not _USUARIO_PATTERN.match(usuario):
        raise ValidationError("El usuario solo puede contener letras, números, puntos y guiones bajos")
    password = _validate_new_password(payload.get("password") or "")
    extension = clean(payload.get("extension")) or None

    with unit_of_work("Error al registrar usuario") as session:
        if session.scalar(select(User.id).where(User.usuario == usuario)) is not None:
            raise ValidationError("El nombre de usuario ya está en uso")
        if extension and session.scalar(select(User.id).where(User.extension == extension)) is not None:
            raise ValidationError("La extensión ya está en uso")
        user = User(
            nombre_completo=nombre_completo,
            usuario=usuario,
            extension=extension,
            password_hash=hash_secret(password),
            rol=Rol.ANALISTA,
            password_changed=True,
        )
        session.add(user)
    logger.info("Usuario %s registrado", usuario)
    data = user_to_dict(user)
    data["token"] = issue(user)
    return ok(data=data, message="Usuario registrado exitosamente", status=201)


@auth_bp.get("/profile")
@login_required
def profile():
    user = current_actor()
    return ok(
        data=user_to_dict(user),
        warning=None if user.password_changed else PASSWORD_WARNING,
    )


@auth_bp.put("/profile")
@login_required
def update_profile():
    payload = json_payload()
    user = current_actor()
    with unit_of_work("Error al actualizar perfil") as session:
        if "nombre_completo" in payload:
            nombre_completo = clean(payload["nombre_completo"])
            if len(nombre_completo) < 3:
                raise ValidationError("El nombre completo debe tener al menos 3 caracteres")
            user.nombre_completo = nombre_completo
        if "extension" in payload:
            extension = clean(payload["extension"]) or None
            if extension:
                taken = session.scalar(select(User.id).where(User.extension == extension, User.id != user.id))
                if taken is not None:
                    raise ValidationError("La extensión ya está en uso")
            user.extension = extension
    return ok(data=user_to_dict(user), message="Perfil actualizado exitosamente")


@auth_bp.put("/change-password")
@login_required
def change_password():
    payload = json_payload()
    user = current_actor()
    current_password = payload.get("currentPassword") or payload.get("current_password") or ""
    new_password = _validate_new_password(payload.get("newPassword") or payload.get("new_password") or "")
    if not verify_secret(user, current_password):
        raise AuthError("Contraseña actual incorrecta")
    with unit_of_work("Error al cambiar contraseña"):
        user.password_hash = hash_secret(new_password)
        user.password_changed = True
    logger.info("Usuario %s cambio su contraseña", user.id)
    return ok(message="Contraseña actualizada exitosamente")
