from flask import Blueprint

print_queue_bp = Blueprint("print_queue", __name__, url_prefix="/api/print-queue")

from geoqueue.blueprints.print_queue import routes  # noqa: E402,F401
