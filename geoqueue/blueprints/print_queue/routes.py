# geoqueue/blueprints/print_queue/routes.py
from flask import request, jsonify, Response
from flask_login import login_required, current_user

from geoqueue.blueprints.print_queue import print_queue_bp
from geoqueue.models.api_key import PRINT_READ, PRINT_WRITE
from geoqueue.models.print_attempt import PrintAttempt
from geoqueue.services import acceptance, print_queue
from geoqueue.services.errors import Forbidden, ValidationError
from geoqueue.services.progress_channel import get_progress_channel
from geoqueue.utils.security import caller_org_id, can_access_org, require_capability
from geoqueue.utils.timeutil import iso, parse_iso


def _attempt_payload(attempt: PrintAttempt) -> dict:
    job = attempt.job
    return {
        "id": attempt.id,
        "job_id": attempt.job_id,
        "job_short_id": job.short_id if job else None,
        "design_name": job.design.name if job and job.design else None,
        "created_at": iso(attempt.created_at),
        "print_started_at": iso(attempt.print_started_at),
        "print_completed_at": iso(attempt.print_completed_at),
        "succeeded": attempt.succeeded,
        "progress": attempt.progress,
        "progress_reported_at": iso(attempt.progress_reported_at),
        "note": attempt.note,
        "acceptance": attempt.acceptance_label,
        "geometry_file_name": job.geometry_file_name if job else None,
        "print_file_name": job.print_file_name if job else None,
    }


def _check_access(attempt: PrintAttempt) -> None:
    if not can_access_org(attempt.job.owner_org_id):
        raise Forbidden("Access denied")


def _parse_datetime(value, field: str):
    try:
        return parse_iso(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


@print_queue_bp.get("")
@login_required
def list_attempts():
    if not current_user.organization_id:
        raise Forbidden("User must be part of an organization")
    rows = print_queue.list_print_attempts(current_user.organization_id)
    return jsonify({"rows": [_attempt_payload(a) for a in rows]})


@print_queue_bp.get("/<int:attempt_id>")
@login_required
def attempt_detail(attempt_id: int):
    attempt = print_queue.get_print_attempt(attempt_id)
    _check_access(attempt)
    return jsonify(_attempt_payload(attempt))


@print_queue_bp.put("/<int:attempt_id>/progress")
@require_capability(PRINT_WRITE)
def update_progress(attempt_id: int):
    _check_access(print_queue.get_print_attempt(attempt_id))

    data = request.get_json(silent=True) or {}
    attempt = print_queue.record_progress(attempt_id, data.get("progress"))

    get_progress_channel().broadcast({
        "type": "progress",
        "id": attempt.id,
        "progress": attempt.progress,
        "progress_reported_at": iso(attempt.progress_reported_at),
    })

    return jsonify({"ok": True, "id": attempt.id, "progress": attempt.progress})


@print_queue_bp.put("/<int:attempt_id>")
@require_capability(PRINT_WRITE)
def update_outcome(attempt_id: int):
    data = request.get_json(silent=True) or {}

    succeeded = data.get("succeeded")
    if succeeded is not None and not isinstance(succeeded, bool):
        raise ValidationError("succeeded must be a boolean")

    attempt = print_queue.get_print_attempt(attempt_id)
    _check_access(attempt)

    attempt = print_queue.record_print_outcome(
        attempt_id,
        started_at=_parse_datetime(data.get("print_started_at"), "print_started_at"),
        completed_at=_parse_datetime(data.get("print_completed_at"), "print_completed_at"),
        succeeded=succeeded,
        note=data.get("note"),
    )
    return jsonify(_attempt_payload(attempt))


@print_queue_bp.put("/<int:attempt_id>/logs")
@require_capability(PRINT_WRITE)
def update_logs(attempt_id: int):
    _check_access(print_queue.get_print_attempt(attempt_id))

    data = request.get_json(silent=True) or {}
    attempt = print_queue.record_print_logs(attempt_id, data.get("logs"))
    return jsonify({"ok": True, "id": attempt.id})


@print_queue_bp.post("/<int:attempt_id>/acceptance")
@login_required
def decide_acceptance(attempt_id: int):
    data = request.get_json(silent=True) or {}

    attempt = acceptance.decide(
        attempt_id,
        data.get("accept"),
        org_id=caller_org_id(),
        note=data.get("note"),
        user_id=current_user.id,
    )
    return jsonify(_attempt_payload(attempt))


@print_queue_bp.get("/events")
@require_capability(PRINT_READ)
def events():
    channel = get_progress_channel()
    subscriber = channel.subscribe()
    return Response(
        channel.stream(subscriber),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",  # sin buffering en nginx
        },
    )
