from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from jose import JWTError, jwt
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.errors import AuthError
from app.core.extensions import db
from app.core.models import User, utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Usuario o contraseña incorrectos"
INVALID_TOKEN = "Token inválido o expirado"


def hash_secret(secret: str) -> str:
    return generate_password_hash(secret)


def verify_secret(user: User, secret: str) -> bool:
    return check_password_hash(user.password_hash, secret or "")


def authenticate(handle: str, secret: str) -> User:
    handle = (handle or "").strip()
    if not handle or not secret:
        raise AuthError(INVALID_CREDENTIALS)
    user = db.session.scalar(select(User).where(User.usuario == handle))
    # Inactive accounts fail exactly like a wrong password.
    if user is None or not user.activo or not verify_secret(user, secret):
        logger.warning("Intento de inicio de sesion fallido para %s", handle)
        raise AuthError(INVALID_CREDENTIALS)
    return user


def issue(user: User) -> str:
    config = current_app.config
    claims = {
        "sub": str(user.id),
        "exp": utcnow() + timedelta(days=config["JWT_EXPIRES_DAYS"]),
    }
    return jwt.encode(claims, config["JWT_SECRET"], algorithm=config["JWT_ALGORITHM"])


def resolve(token: str) -> int:
    """Return the user id carried by ``token``.

    Role and region are never read from the token; callers load the user from
    storage so that changes apply on the next request.
    """
    config = current_app.config
    try:
        claims = jwt.decode(token, config["JWT_SECRET"], algorithms=[config["JWT_ALGORITHM"]])
    except JWTError as exc:
        raise AuthError(INVALID_TOKEN) from exc
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthError(INVALID_TOKEN) from exc
