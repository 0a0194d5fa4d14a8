from flask import Blueprint

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/geometry-jobs")

from geoqueue.blueprints.jobs import routes  # noqa: E402,F401
