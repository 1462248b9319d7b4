from flask import Blueprint

catalogos_bp = Blueprint("catalogos", __name__, url_prefix="/api/catalogos")

from app.catalogos import routes  # noqa: E402,F401
