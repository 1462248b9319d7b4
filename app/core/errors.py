from __future__ import annotations

import logging

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Error interno del servidor"

    def __init__(self, message: str | None = None, data: dict | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.data = data


class ValidationError(AppError, ValueError):
    status_code = 400
    default_message = "Datos invalidos"


class AuthError(AppError):
    status_code = 401
    default_message = "Token no proporcionado"


class AuthorizationError(AppError):
    status_code = 403
    default_message = "No tienes permisos para realizar esta acción"


class NotFoundError(AppError, LookupError):
    status_code = 404
    default_message = "Recurso no encontrado"


class StorageError(AppError):
    status_code = 500
    default_message = "Error de almacenamiento"

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail


def _exposes_internal_detail() -> bool:
    app_env = (current_app.config.get("APP_ENV") or "").strip().lower()
    return app_env in {"dev", "development"}


def error_body(error: AppError) -> dict[str, object]:
    body: dict[str, object] = {"success": False, "message": error.message}
    if error.data is not None:
        body["data"] = error.data
    if isinstance(error, StorageError) and error.detail and _exposes_internal_detail():
        body["error"] = error.detail
    return body


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        return jsonify(error_body(error)), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        messages = {
            404: "Ruta no encontrada",
            405: "Metodo no permitido",
        }
        message = messages.get(error.code or 500, error.description or error.name)
        return jsonify({"success": False, "message": message}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        logger.exception("Error no controlado: %s", error)
        body: dict[str, object] = {"success": False, "message": AppError.default_message}
        if _exposes_internal_detail():
            body["error"] = str(error)
        return jsonify(body), 500
