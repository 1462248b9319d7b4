from __future__ import annotations

import logging
from functools import wraps

from flask_login import current_user

from app.core.errors import AuthError, AuthorizationError
from app.core.models import Rol

logger = logging.getLogger(__name__)

ADMIN_ROLES: tuple[Rol, ...] = (Rol.ADMIN, Rol.SUPER_ADMIN)
C3_READERS: tuple[Rol, ...] = (Rol.VALIDADOR_C3, Rol.ADMIN, Rol.SUPER_ADMIN)


def ensure_role(user, *roles: Rol) -> None:
    if user is None or not getattr(user, "is_authenticated", False):
        raise AuthError()
    if user.rol not in roles:
        logger.warning(
            "Usuario %s con rol %s sin permiso (requiere %s)",
            user.id,
            user.rol.value,
            ", ".join(role.value for role in roles),
        )
        raise AuthorizationError()


def require_role(*roles: Rol):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ensure_role(current_user, *roles)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def current_actor():
    """The authenticated ``User`` behind the ``current_user`` proxy."""
    return current_user._get_current_object()
