from flask import Blueprint

processing_bp = Blueprint("processing", __name__, url_prefix="/api/geometry-processing")

from geoqueue.blueprints.processing import routes  # noqa: E402,F401
