# geoqueue/blueprints/processing/routes.py
"""Polling contract with the external geometry processing agent."""
import base64
import binascii
import logging

from flask import request, jsonify, current_app

from geoqueue.blueprints.processing import processing_bp
from geoqueue.models.api_key import QUEUE_READ, QUEUE_WRITE
from geoqueue.models.processing_job import FILE_SLOTS
from geoqueue.services import job_store
from geoqueue.services.errors import ValidationError
from geoqueue.services.liveness import get_liveness
from geoqueue.services.storage import InlineFile, discard_files, get_storage, store_result_file
from geoqueue.utils.parsing import parse_bool, parse_id
from geoqueue.utils.security import admin_required, caller_user_id, require_capability
from geoqueue.utils.timeutil import iso

logger = logging.getLogger(__name__)

FORM_MIMETYPES = {"multipart/form-data", "application/x-www-form-urlencoded"}


def _claim_payload(job) -> dict:
    design = job.design
    payload = {
        "id": job.id,
        "short_id": job.short_id,
        "design_id": job.design_id,
        "design_name": design.name,
        "algorithm_name": design.algorithm_name,
        "parameter_schema": design.parameter_schema,
        "schema_version": job.design_schema_version,
        "parameters": job.parameters,
        "customer_note": job.customer_note,
        "customer_ref": job.customer_ref,
        "created_at": iso(job.created_at),
        "started_at": iso(job.started_at),
        # Solo nombres; los bytes se descargan aparte
        **job.file_names(),
        "creator": {"id": job.creator.id, "username": job.creator.username} if job.creator else None,
        "organization": {"id": job.owner_org.id, "name": job.owner_org.name} if job.owner_org else None,
    }
    if job.is_debug:
        payload["is_debug_request"] = True
        payload["debug_source_job_id"] = job.debug_source_job_id
    return payload


@processing_bp.get("/next-job")
@require_capability(QUEUE_READ)
def next_job():
    get_liveness().touch()

    job = job_store.claim_next_job()
    if not job:
        return "", 204

    payload = _claim_payload(job)

    if job.is_debug:
        job_store.finalize_debug_pickup(job.id)

    return jsonify(payload)


@processing_bp.post("/mark-started")
@require_capability(QUEUE_WRITE)
def mark_started():
    data = request.get_json(silent=True) or {}
    job = job_store.mark_job_started(parse_id(data.get("job_id"), "job_id"))
    return jsonify({"ok": True, "job_id": job.id, "started_at": iso(job.started_at)})


def _legacy_files(data: dict) -> dict:
    max_bytes = current_app.config["LEGACY_FILE_MAX_BYTES"]
    files = {}
    for slot in FILE_SLOTS:
        encoded = data.get(f"{slot}_file_contents")
        if not encoded:
            continue
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise ValidationError(f"Invalid base64 encoding for {slot} file")
        if len(raw) > max_bytes:
            raise ValidationError(f"{slot.capitalize()} file exceeds {max_bytes // (1024 * 1024)}MB limit")
        files[slot] = InlineFile(filename=data.get(f"{slot}_file_name") or f"{slot}_file", data=raw)
    return files


@processing_bp.post("/result")
@require_capability(QUEUE_WRITE)
def report_result():
    """
    Multipart (preferred): fields job_id, succeeded, log, error_message and
    file parts geometry_file / print_file, streamed into the blob store.
    JSON (legacy): same fields plus base64 <slot>_file_contents, size-capped.
    """
    if request.mimetype in FORM_MIMETYPES:
        form = request.form
        job_id = parse_id(form.get("job_id"), "job_id")
        succeeded = parse_bool(form.get("succeeded"), "succeeded")
        log, error_note = form.get("log"), form.get("error_message")

        # No subir nada a un job que no se puede reportar
        job_store.ensure_reportable(job_id)

        storage = get_storage()
        files = {}
        try:
            for slot in FILE_SLOTS:
                upload = request.files.get(f"{slot}_file")
                if upload and upload.filename:
                    files[slot] = store_result_file(storage, upload)
            logger.info("Stored %d streamed file(s) for job %s", len(files), job_id)
            job, attempt = job_store.report_result(job_id, succeeded, log=log, error_note=error_note, files=files)
        except Exception:
            # El resultado no quedó guardado: borrar lo que se subió
            discard_files(storage, files)
            raise
    else:
        data = request.get_json(silent=True) or {}
        job_id = parse_id(data.get("job_id"), "job_id")
        succeeded = parse_bool(data.get("succeeded"), "succeeded")
        log, error_note = data.get("log"), data.get("error_message")
        job, attempt = job_store.report_result(
            job_id, succeeded, log=log, error_note=error_note, files=_legacy_files(data)
        )

    response = {
        "message": "Processing result recorded successfully",
        "job": {
            "id": job.id,
            "completed_at": iso(job.completed_at),
            "succeeded": job.succeeded,
            **job.file_names(),
        },
        "print_attempt": None,
    }
    if attempt:
        response["print_attempt"] = {
            "id": attempt.id,
            "progress": attempt.progress,
            "acceptance": attempt.acceptance_label,
            "has_geometry_file": job.get_file("geometry") is not None,
            "has_print_file": job.get_file("print") is not None,
        }
    return jsonify(response), 201


@processing_bp.post("/debug")
@admin_required
def debug_request():
    data = request.get_json(silent=True) or {}
    debug_job = job_store.request_debug_run(parse_id(data.get("job_id"), "job_id"), requested_by=caller_user_id())
    return jsonify({
        "ok": True,
        "debug_job_id": debug_job.id,
        "message": f"Debug request created for {debug_job.design.name}.",
    }), 201


@processing_bp.get("/processor-health")
@admin_required
def processor_health():
    return jsonify(get_liveness().status())
