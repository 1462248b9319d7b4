from __future__ import annotations

from sqlalchemy import Select, false, select

from app.core.models import Municipio, Rol, Solicitud, User


def is_region_scoped(user: User) -> bool:
    return user.rol == Rol.ANALISTA


def scope_to_region(stmt: Select, user: User) -> Select:
    """Restrict a ``Solicitud`` select to what ``user`` may see.

    Analysts only see requests whose municipality belongs to their region. An
    analyst without a region sees nothing. Every other role is unrestricted.
    """
    if not is_region_scoped(user):
        return stmt
    if user.region_id is None:
        return stmt.where(false())
    region_municipios = select(Municipio.id).where(Municipio.region_id == user.region_id)
    return stmt.where(Solicitud.municipio_id.in_(region_municipios))


def can_see(solicitud: Solicitud, user: User) -> bool:
    if not is_region_scoped(user):
        return True
    if user.region_id is None or solicitud.municipio is None:
        return False
    return solicitud.municipio.region_id == user.region_id
