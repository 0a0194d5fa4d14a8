from flask import jsonify, current_app

from geoqueue.blueprints.admin import admin_bp
from geoqueue.services.liveness import get_liveness
from geoqueue.services.metrics import queue_snapshot
from geoqueue.utils.security import admin_required
from geoqueue.utils.timeutil import iso, to_local, utcnow


@admin_bp.get("/system-status")
@admin_required
def system_status():
    """Point-in-time snapshot for the operator dashboard. Read only."""
    now = utcnow()
    snapshot = queue_snapshot(now, stale_minutes=current_app.config["STALE_JOB_MINUTES"])

    local_now = to_local(now, current_app.config["APP_TZ"])
    return jsonify({
        "timestamp": iso(now),
        "local_time": local_now.strftime("%Y-%m-%d %H:%M:%S %Z"),
        "processor": get_liveness().status(),
        **snapshot,
    })
