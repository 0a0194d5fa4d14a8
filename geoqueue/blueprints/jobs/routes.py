# geoqueue/blueprints/jobs/routes.py
import io
import re

import openpyxl
from flask import request, jsonify, current_app, redirect, send_file
from flask_login import login_required, current_user
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from geoqueue.blueprints.jobs import jobs_bp
from geoqueue.models.api_key import QUEUE_READ
from geoqueue.models.processing_job import ProcessingJob, FILE_SLOTS
from geoqueue.services import job_store
from geoqueue.services.errors import Forbidden, NotFound, ValidationError
from geoqueue.services.storage import RemoteFile, content_type_for, get_storage
from geoqueue.utils.parsing import parse_id
from geoqueue.utils.security import can_access_org, require_capability
from geoqueue.utils.timeutil import iso, to_local

UNSAFE_FILENAME_RE = re.compile(r"[\r\n\\/\x00-\x1f\"]")
EXPORT_STATUSES = ("PENDING", "STARTED", "SUCCEEDED", "FAILED")


def _safe_filename(name: str) -> str:
    # Evita header injection / path traversal en Content-Disposition
    return UNSAFE_FILENAME_RE.sub("_", name or "file")


def _require_org() -> int:
    if not current_user.organization_id:
        raise Forbidden("User must be part of an organization")
    return current_user.organization_id


def _check_access(job: ProcessingJob) -> None:
    if not can_access_org(job.owner_org_id):
        raise Forbidden("Access denied")


def _job_payload(job: ProcessingJob) -> dict:
    payload = {
        "id": job.id,
        "short_id": job.short_id,
        "status": job.status,
        "design_id": job.design_id,
        "design_name": job.design.name if job.design else None,
        "algorithm_name": job.design.algorithm_name if job.design else None,
        "schema_version": job.design_schema_version,
        "parameters": job.parameters,
        "customer_note": job.customer_note,
        "customer_ref": job.customer_ref,
        "created_at": iso(job.created_at),
        "started_at": iso(job.started_at),
        "completed_at": iso(job.completed_at),
        "succeeded": job.succeeded if job.completed_at else None,
        "is_enabled": job.is_enabled,
        "processing_log": job.processing_log,
        "print_attempt_ids": [a.id for a in job.print_attempts],
    }
    for slot in FILE_SLOTS:
        payload[f"{slot}_file_name"] = getattr(job, f"{slot}_file_name")
        payload[f"has_{slot}_file"] = job.get_file(slot) is not None
    return payload


@jobs_bp.post("")
@login_required
def submit():
    org_id = _require_org()
    data = request.get_json(silent=True) or {}

    job = job_store.submit_job(
        owner_org_id=org_id,
        creator_id=current_user.id,
        design_id=parse_id(data.get("design_id"), "design_id"),
        parameters=data.get("parameters"),
        customer_note=data.get("customer_note"),
        customer_ref=data.get("customer_ref"),
    )
    return jsonify(_job_payload(job)), 201


@jobs_bp.get("")
@login_required
def list_jobs():
    org_id = _require_org()
    jobs = (
        ProcessingJob.query.filter_by(owner_org_id=org_id, is_debug=False)
        .order_by(ProcessingJob.created_at.desc())
        .all()
    )
    return jsonify({"rows": [_job_payload(j) for j in jobs]})


@jobs_bp.get("/export")
@login_required
def export_jobs():
    """
    Exporta los jobs de la organización a Excel (xlsx).
      - status: PENDING / STARTED / SUCCEEDED / FAILED (opcional)
    """
    org_id = _require_org()
    status = (request.args.get("status") or "").strip().upper()
    if status and status not in EXPORT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(EXPORT_STATUSES)}")

    jobs = (
        ProcessingJob.query.filter_by(owner_org_id=org_id, is_debug=False)
        .order_by(ProcessingJob.created_at.asc())
        .all()
    )
    if status:
        jobs = [j for j in jobs if j.status == status]

    tz_name = current_app.config["APP_TZ"]

    def _fmt(dt):
        local = to_local(dt, tz_name)
        return local.strftime("%Y-%m-%d %H:%M:%S") if local else ""

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Jobs"

    headers = [
        "ID",
        "CODE",
        "DESIGN",
        "STATUS",
        "CUSTOMER_REF",
        "CREATED",
        "STARTED",
        "COMPLETED",
        "GEOMETRY_FILE",
        "PRINT_FILE",
        "ERROR",
    ]
    ws.append(headers)

    for col_idx in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for j in jobs:
        ws.append([
            j.id,
            j.short_id or "",
            j.design.name if j.design else "",
            j.status,
            j.customer_ref or "",
            _fmt(j.created_at),
            _fmt(j.started_at),
            _fmt(j.completed_at),
            j.geometry_file_name or "",
            j.print_file_name or "",
            j.last_error or "",
        ])

    # Auto ancho
    for col_idx in range(1, len(headers) + 1):
        col_letter = get_column_letter(col_idx)
        max_len = max(len("" if c.value is None else str(c.value)) for c in ws[col_letter])
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)

    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)

    return send_file(
        bio,
        as_attachment=True,
        download_name=f"jobs_{status or 'ALL'}.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


@jobs_bp.get("/<int:job_id>")
@login_required
def job_detail(job_id: int):
    job = job_store.get_job(job_id)
    _check_access(job)
    return jsonify(_job_payload(job))


@jobs_bp.get("/by-short-id/<string:code>")
@login_required
def job_by_short_id(code: str):
    job = job_store.get_job_by_short_id(code)
    _check_access(job)
    return jsonify(_job_payload(job))


@jobs_bp.get("/<int:job_id>/files/<string:slot>")
@require_capability(QUEUE_READ)
def download_file(job_id: int, slot: str):
    if slot not in FILE_SLOTS:
        raise NotFound("Unknown file slot")

    job = job_store.get_job(job_id)
    _check_access(job)

    stored = job.get_file(slot)
    if stored is None:
        raise NotFound(f"No {slot} file available for this job")

    if isinstance(stored, RemoteFile):
        storage = get_storage()
        url = storage.signed_url(stored.ref.pathname, current_app.config["BLOB_URL_EXPIRES"])
        if url:
            return redirect(url)
        data, mimetype = storage.read(stored.ref.pathname), stored.ref.content_type
    else:
        data, mimetype = stored.data, content_type_for(stored.filename)

    return send_file(
        io.BytesIO(data),
        mimetype=mimetype,
        as_attachment=True,
        download_name=_safe_filename(stored.filename),
    )
