# geoqueue/services/job_store.py
"""
Processing job lifecycle: Pending -> Started -> {Succeeded, Failed}.

Debug jobs add Pending -> (deleted): they are removed right after the
single pickup that serves them. No transition goes backwards.
"""
import logging
from typing import Mapping, Optional

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from geoqueue.extensions import db
from geoqueue.models.design import Design
from geoqueue.models.print_attempt import PrintAttempt
from geoqueue.models.processing_job import ProcessingJob, FILE_SLOTS
from geoqueue.services.audit import audit_log
from geoqueue.services.errors import FatalError, NotFound, NotStarted, ValidationError
from geoqueue.services.parameters import coerce_parameters, validate_parameters
from geoqueue.services.short_id import DEBUG_SHORT_ID, generate_short_id, normalize
from geoqueue.services.storage import StoredFile
from geoqueue.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

CUSTOMER_NOTE_MAX = 500
CUSTOMER_REF_MAX = 20


def get_job(job_id: int) -> ProcessingJob:
    job = db.session.get(ProcessingJob, job_id)
    if not job:
        raise NotFound("Processing job not found")
    return job


def get_job_by_short_id(code: str) -> ProcessingJob:
    short_id = normalize(code)
    if not short_id:
        raise ValidationError("Invalid short id")
    job = ProcessingJob.query.filter_by(short_id=short_id, is_enabled=True).first()
    if not job:
        raise NotFound("Processing job not found")
    return job


def submit_job(
    owner_org_id: int,
    creator_id: int,
    design_id: int,
    parameters,
    customer_note: Optional[str] = None,
    customer_ref: Optional[str] = None,
) -> ProcessingJob:
    design = db.session.get(Design, design_id) if design_id is not None else None
    if not design or not design.is_enabled:
        raise NotFound("Design not found")

    if customer_note and len(customer_note) > CUSTOMER_NOTE_MAX:
        raise ValidationError(f"customer_note must be {CUSTOMER_NOTE_MAX} characters or less")
    if customer_ref and len(customer_ref) > CUSTOMER_REF_MAX:
        raise ValidationError(f"customer_ref must be {CUSTOMER_REF_MAX} characters or less")

    data = coerce_parameters(parameters)
    validate_parameters(design.parameter_schema, data)

    max_attempts = current_app.config["SHORT_ID_MAX_ATTEMPTS"]
    design_name, schema_version = design.name, design.schema_version

    for attempt in range(max_attempts):
        short_id = generate_short_id(max_attempts)
        job = ProcessingJob(
            short_id=short_id,
            owner_org_id=owner_org_id,
            creator_id=creator_id,
            design_id=design_id,
            design_schema_version=schema_version,
            parameters=data,
            customer_note=customer_note or None,
            customer_ref=customer_ref or None,
        )
        db.session.add(job)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            # Otro submit insertó el mismo código entre el SELECT y el INSERT
            if not ProcessingJob.query.filter_by(short_id=short_id).first():
                raise
            logger.warning(
                "Short id %s taken at insert (attempt %d/%d)", short_id, attempt + 1, max_attempts
            )
            continue

        audit_log(creator_id, "JOB_SUBMITTED", "processing_job", job.id, {"design_id": design_id})
        db.session.commit()

        logger.info("Submitted job %s (%s) for design %s", job.id, job.short_id, design_name)
        return job

    raise FatalError(f"Could not insert a unique short id after {max_attempts} attempts")


def claim_next_job() -> Optional[ProcessingJob]:
    """
    Hands the oldest pending job to exactly one caller.

    The claim is the conditional UPDATE below (started_at IS NULL in the
    WHERE clause, one affected row expected). Correctness depends on the
    storage engine applying that update atomically; the candidate SELECT
    is only a hint and may be stale by the time the UPDATE runs.
    """
    max_attempts = current_app.config["CLAIM_MAX_ATTEMPTS"]

    for attempt in range(max_attempts):
        candidate_id = db.session.execute(
            select(ProcessingJob.id)
            .where(ProcessingJob.is_enabled.is_(True), ProcessingJob.started_at.is_(None))
            .order_by(ProcessingJob.created_at.asc(), ProcessingJob.id.asc())
            .limit(1)
            # Importante: PostgreSQL soporta FOR UPDATE SKIP LOCKED
            .with_for_update(skip_locked=True)
        ).scalar()

        if candidate_id is None:
            db.session.rollback()
            return None

        result = db.session.execute(
            update(ProcessingJob)
            .where(ProcessingJob.id == candidate_id, ProcessingJob.started_at.is_(None))
            .values(started_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            db.session.commit()
            job = db.session.get(ProcessingJob, candidate_id)
            logger.info("Claimed job %s (%s)", job.id, job.short_id)
            return job

        db.session.rollback()
        logger.info("Lost claim race for job %s (attempt %d/%d)", candidate_id, attempt + 1, max_attempts)

    return None


def mark_job_started(job_id: int) -> ProcessingJob:
    """Sets started_at if still unset. An already started job is returned unchanged."""
    get_job(job_id)

    result = db.session.execute(
        update(ProcessingJob)
        .where(ProcessingJob.id == job_id, ProcessingJob.started_at.is_(None))
        .values(started_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    job = get_job(job_id)
    if result.rowcount == 1:
        logger.info("Marked job %s as started at %s", job.id, job.started_at)
    return job


def ensure_reportable(job_id: int) -> ProcessingJob:
    """Checked before any result file is stored. A completed job is rejected like a duplicate report."""
    job = get_job(job_id)
    if job.started_at is None:
        raise NotStarted("Job has not been started yet")
    if job.completed_at is not None:
        raise FatalError(f"Result already recorded for job {job.id}")
    return job


def _bounded_log(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    limit = current_app.config["PROCESSING_LOG_MAX_CHARS"]
    # se guarda la cola, ahí está el error
    return text[-limit:] if len(text) > limit else text


def report_result(
    job_id: int,
    succeeded: bool,
    log: Optional[str] = None,
    error_note: Optional[str] = None,
    files: Optional[Mapping[str, StoredFile]] = None,
) -> tuple[ProcessingJob, Optional[PrintAttempt]]:
    """
    Records the agent's result and, on success, the job's print attempt.

    Both writes share one transaction. A second report for the same job is
    not retried or merged: FatalError is raised, either by ensure_reportable
    or, when two reports race, by the conditional completion write.
    """
    job = ensure_reportable(job_id)
    files = dict(files or {})
    for slot in files:
        if slot not in FILE_SLOTS:
            raise ValidationError(f"Unknown file slot: {slot}")

    try:
        result = db.session.execute(
            update(ProcessingJob)
            .where(
                ProcessingJob.id == job.id,
                ProcessingJob.started_at.is_not(None),
                ProcessingJob.completed_at.is_(None),
            )
            .values(
                completed_at=utcnow(),
                succeeded=bool(succeeded),
                processing_log=_bounded_log(log),
                last_error=(error_note or None) if not succeeded else None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise FatalError(f"Result already recorded for job {job.id}")

        db.session.refresh(job)
        for slot, stored in files.items():
            job.set_file(slot, stored)

        attempt = None
        if succeeded:
            attempt = PrintAttempt(job_id=job.id, progress=0)
            db.session.add(attempt)

        db.session.commit()
    except (SQLAlchemyError, FatalError):
        db.session.rollback()
        raise

    if succeeded:
        logger.info("Job %s succeeded; print attempt %s created", job.id, attempt.id)
    else:
        logger.warning("Job %s failed: %s", job.id, error_note or "No error message provided")

    return job, attempt


def _delete_jobs(job_ids: list[int]) -> None:
    # primero los print attempts: FK a processing_jobs
    # "fetch" saca las filas borradas del identity map (SQLite reutiliza ids)
    db.session.execute(
        delete(PrintAttempt).where(PrintAttempt.job_id.in_(job_ids)),
        execution_options={"synchronize_session": "fetch"},
    )
    db.session.execute(
        delete(ProcessingJob).where(ProcessingJob.id.in_(job_ids)),
        execution_options={"synchronize_session": "fetch"},
    )


def request_debug_run(source_job_id: int, requested_by: Optional[int] = None) -> ProcessingJob:
    """Clones a job into the single debug slot, replacing any previous debug job."""
    source = get_job(source_job_id)

    clone = dict(
        design_id=source.design_id,
        design_schema_version=source.design_schema_version,
        parameters=source.parameters,
        customer_note=f"DEBUG: {source.customer_note or 'Manual debug request'}"[:500],
        customer_ref=source.customer_ref,
        creator_id=requested_by or source.creator_id,
        owner_org_id=source.owner_org_id,
        debug_source_job_id=source.id,
    )

    try:
        stale = [row for (row,) in db.session.execute(
            select(ProcessingJob.id).where(ProcessingJob.is_debug.is_(True))
        )]
        if stale:
            _delete_jobs(stale)
            logger.info("Removed %d previous debug job(s)", len(stale))

        debug_job = ProcessingJob(short_id=DEBUG_SHORT_ID, is_debug=True, is_enabled=True, **clone)
        db.session.add(debug_job)
        db.session.flush()

        audit_log(requested_by, "DEBUG_REQUESTED", "processing_job", clone["debug_source_job_id"], {"debug_job_id": debug_job.id})
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Created debug job %s from job %s", debug_job.id, clone["debug_source_job_id"])
    return debug_job


def finalize_debug_pickup(job_id: int) -> None:
    """Deletes a served debug job. Best effort: failures are logged, never raised."""
    try:
        _delete_jobs([job_id])
        db.session.commit()
        logger.info("Debug job %s removed after pickup", job_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not remove debug job %s after pickup", job_id)
