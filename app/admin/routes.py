from __future__ import annotations

from flask import request
from flask_login import login_required

from app.admin import admin_bp
from app.admin.services import (
    admin_stats,
    create_user,
    list_users,
    reset_password,
    set_user_active,
    update_user,
)
from app.core.permissions import ADMIN_ROLES, current_actor, require_role
from app.core.serializers import user_to_dict
from app.core.utils import json_payload, ok


@admin_bp.get("/usuarios")
@login_required
@require_role(*ADMIN_ROLES)
def usuarios():
    rows = [user_to_dict(u) for u in list_users(current_actor(), request.args.to_dict())]
    return ok(data=rows, total=len(rows))


@admin_bp.post("/usuarios")
@login_required
@require_role(*ADMIN_ROLES)
def usuario_crear():
    user = create_user(json_payload(), current_actor())
    data = user_to_dict(user)
    data["password_inicial"] = user.extension
    return ok(data=data, message="Usuario creado exitosamente", status=201)


@admin_bp.put("/usuarios/<int:user_id>")
@login_required
@require_role(*ADMIN_ROLES)
def usuario_actualizar(user_id: int):
    user = update_user(user_id, json_payload(), current_actor())
    return ok(data=user_to_dict(user), message="Usuario actualizado exitosamente")


@admin_bp.patch("/usuarios/<int:user_id>/deactivate")
@login_required
@require_role(*ADMIN_ROLES)
def usuario_desactivar(user_id: int):
    set_user_active(user_id, False, current_actor())
    return ok(message="Usuario desactivado exitosamente")


@admin_bp.patch("/usuarios/<int:user_id>/activate")
@login_required
@require_role(*ADMIN_ROLES)
def usuario_activar(user_id: int):
    set_user_active(user_id, True, current_actor())
    return ok(message="Usuario reactivado exitosamente")


@admin_bp.patch("/usuarios/<int:user_id>/reset-password")
@login_required
@require_role(*ADMIN_ROLES)
def usuario_reset_password(user_id: int):
    temporal = reset_password(user_id, current_actor())
    return ok(data={"password_temporal": temporal}, message="Contraseña reseteada exitosamente")


@admin_bp.get("/estadisticas")
@login_required
@require_role(*ADMIN_ROLES)
def estadisticas_admin():
    return ok(data=admin_stats(current_actor()))
