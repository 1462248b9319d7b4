from flask import Blueprint

tramites_bp = Blueprint("tramites", __name__, url_prefix="/api/tramites/alta")
solicitudes_bp = Blueprint("solicitudes", __name__, url_prefix="/api/solicitudes")

from app.tramites import routes  # noqa: E402,F401
