from __future__ import annotations

import logging

from sqlalchemy import case, func, or_, select

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.core.extensions import db
from app.core.identity import hash_secret
from app.core.models import Municipio, Region, Rol, Solicitud, User
from app.core.permissions import ADMIN_ROLES, ensure_role
from app.core.storage import unit_of_work
from app.core.utils import clean, parse_bool, parse_optional_int

logger = logging.getLogger(__name__)


def _parse_rol(value: object, default: Rol | None = None) -> Rol:
    raw = clean(value).lower()
    if not raw:
        if default is None:
            raise ValidationError("Falta rol")
        return default
    try:
        return Rol(raw)
    except ValueError as exc:
        raise ValidationError(f"Rol invalido: {raw}") from exc


def _parse_region_id(value: object) -> int | None:
    region_id = parse_optional_int(value, "region_id")
    if region_id is not None and db.session.get(Region, region_id) is None:
        raise ValidationError("La región especificada no existe")
    return region_id


def _user_by_id(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado")
    return user


def _ensure_can_grant(actor: User, rol: Rol) -> None:
    if rol == Rol.SUPER_ADMIN and actor.rol != Rol.SUPER_ADMIN:
        raise AuthorizationError("Solo un Super Admin puede asignar el rol super_admin")


def list_users(actor: User, filters: dict | None = None) -> list[User]:
    ensure_role(actor, *ADMIN_ROLES)
    filters = filters or {}
    stmt = select(User)
    if clean(filters.get("rol")):
        stmt = stmt.where(User.rol == _parse_rol(filters["rol"]))
    if clean(filters.get("activo")):
        stmt = stmt.where(User.activo.is_(parse_bool(filters["activo"])))
    region_id = parse_optional_int(filters.get("region_id"), "region_id")
    if region_id is not None:
        stmt = stmt.where(User.region_id == region_id)
    return list(db.session.scalars(stmt.order_by(User.rol.asc(), User.nombre_completo.asc())))


def create_user(payload: dict, actor: User) -> User:
    """Create an account whose initial password is its extension."""
    ensure_role(actor, *ADMIN_ROLES)
    nombre_completo = clean(payload.get("nombre_completo"))
    usuario = clean(payload.get("usuario"))
    extension = clean(payload.get("extension"))
    if not nombre_completo:
        raise ValidationError("Falta nombre_completo")
    if not usuario:
        raise ValidationError("Falta usuario")
    if not extension:
        raise ValidationError("Falta extension")
    rol = _parse_rol(payload.get("rol"), default=Rol.ANALISTA)
    _ensure_can_grant(actor, rol)

    with unit_of_work("Error al crear usuario") as session:
        existing = session.scalar(select(User.id).where(or_(User.usuario == usuario, User.extension == extension)))
        if existing is not None:
            raise ValidationError("El usuario o extensión ya existe")
        user = User(
            nombre_completo=nombre_completo,
            usuario=usuario,
            extension=extension,
            region_id=_parse_region_id(payload.get("region_id")),
            rol=rol,
            password_hash=hash_secret(extension),
            password_changed=False,
        )
        session.add(user)
    logger.info("Usuario %s creado por %s con rol %s", usuario, actor.id, rol.value)
    return user


def update_user(user_id: int, payload: dict, actor: User) -> User:
    ensure_role(actor, *ADMIN_ROLES)
    with unit_of_work("Error al actualizar usuario") as session:
        user = _user_by_id(user_id)
        if user.rol == Rol.SUPER_ADMIN and actor.rol != Rol.SUPER_ADMIN:
            raise AuthorizationError("Solo un Super Admin puede modificar a otro Super Admin")
        if clean(payload.get("nombre_completo")):
            user.nombre_completo = clean(payload["nombre_completo"])
        if clean(payload.get("extension")):
            extension = clean(payload["extension"])
            taken = session.scalar(select(User.id).where(User.extension == extension, User.id != user.id))
            if taken is not None:
                raise ValidationError("El usuario o extensión ya existe")
            user.extension = extension
        if "region_id" in payload:
            user.region_id = _parse_region_id(payload["region_id"])
        if clean(payload.get("rol")):
            rol = _parse_rol(payload["rol"])
            _ensure_can_grant(actor, rol)
            user.rol = rol
    logger.info("Usuario %s actualizado por %s", user_id, actor.id)
    return user


def set_user_active(user_id: int, activo: bool, actor: User) -> User:
    ensure_role(actor, *ADMIN_ROLES)
    with unit_of_work("Error al actualizar el estado del usuario"):
        user = _user_by_id(user_id)
        if not activo and user.rol == Rol.SUPER_ADMIN:
            raise AuthorizationError("No se puede desactivar un Super Admin")
        user.activo = activo
    logger.info("Usuario %s %s por %s", user_id, "activado" if activo else "desactivado", actor.id)
    return user


def reset_password(user_id: int, actor: User) -> str:
    """Reset the password back to the user's extension and return it."""
    ensure_role(actor, *ADMIN_ROLES)
    with unit_of_work("Error al resetear contraseña"):
        user = _user_by_id(user_id)
        if not user.extension:
            raise ValidationError("El usuario no tiene extension registrada")
        if user.rol == Rol.SUPER_ADMIN and actor.rol != Rol.SUPER_ADMIN:
            raise AuthorizationError("Solo un Super Admin puede resetear a otro Super Admin")
        user.password_hash = hash_secret(user.extension)
        user.password_changed = False
        temporal = user.extension
    logger.info("Contraseña de usuario %s reseteada por %s", user_id, actor.id)
    return temporal


def admin_stats(actor: User) -> dict[str, object]:
    ensure_role(actor, *ADMIN_ROLES)
    por_rol = db.session.execute(
        select(
            User.rol,
            func.count(User.id),
            func.coalesce(func.sum(case((User.activo.is_(True), 1), else_=0)), 0),
        ).group_by(User.rol)
    ).all()
    sin_cambiar = db.session.scalar(
        select(func.count(User.id)).where(User.password_changed.is_(False), User.activo.is_(True))
    )
    por_region = db.session.execute(
        select(Region.nombre, func.count(Solicitud.id))
        .select_from(Region)
        .outerjoin(Municipio, Municipio.region_id == Region.id)
        .outerjoin(Solicitud, Solicitud.municipio_id == Municipio.id)
        .group_by(Region.id, Region.nombre)
        .order_by(func.count(Solicitud.id).desc(), Region.nombre.asc())
    ).all()
    return {
        "usuarios_por_rol": [
            {"rol": rol.value, "cantidad": cantidad, "activos": int(activos)} for rol, cantidad, activos in por_rol
        ],
        "usuarios_sin_cambiar_password": sin_cambiar or 0,
        "solicitudes_por_region": [
            {"nombre": nombre, "total_solicitudes": total} for nombre, total in por_region
        ],
    }
