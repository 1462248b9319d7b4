from __future__ import annotations

from datetime import date

from flask import jsonify, request

from app.core.errors import ValidationError


def clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_iso_date(value: object, field_name: str) -> date:
    raw = clean(value)
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Formato de fecha invalido para {field_name}") from exc


def parse_optional_iso_date(value: object, field_name: str) -> date | None:
    if not clean(value):
        return None
    return parse_iso_date(value, field_name)


def parse_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} debe ser un numero entero")
    raw = clean(value)
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{field_name} debe ser un numero entero") from exc


def parse_optional_int(value: object, field_name: str) -> int | None:
    if value is None or clean(value) == "":
        return None
    return parse_int(value, field_name)


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return clean(value).lower() in {"1", "true", "si", "sí", "yes", "on"}


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("El cuerpo de la peticion debe ser un objeto JSON")
    return payload


def ok(data: object = None, message: str | None = None, status: int = 200, **extra: object):
    body: dict[str, object] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status
