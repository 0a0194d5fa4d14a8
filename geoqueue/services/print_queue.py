# geoqueue/services/print_queue.py
import logging
from datetime import datetime
from typing import Optional

from geoqueue.extensions import db
from geoqueue.models.print_attempt import PrintAttempt
from geoqueue.models.processing_job import ProcessingJob
from geoqueue.services.errors import Forbidden, NotFound, ValidationError
from geoqueue.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


def get_print_attempt(attempt_id: int) -> PrintAttempt:
    attempt = db.session.get(PrintAttempt, attempt_id)
    if not attempt:
        raise NotFound("Print attempt not found")
    return attempt


def get_print_attempt_for_org(attempt_id: int, org_id: Optional[int]) -> PrintAttempt:
    attempt = get_print_attempt(attempt_id)
    if org_id is None or attempt.job.owner_org_id != org_id:
        raise Forbidden("Print attempt belongs to a different organization")
    return attempt


def list_print_attempts(org_id: int) -> list[PrintAttempt]:
    return (
        PrintAttempt.query.join(ProcessingJob, ProcessingJob.id == PrintAttempt.job_id)
        .filter(ProcessingJob.owner_org_id == org_id, PrintAttempt.is_enabled.is_(True))
        .order_by(PrintAttempt.created_at.desc())
        .all()
    )


def record_progress(attempt_id: int, progress) -> PrintAttempt:
    if isinstance(progress, bool) or not isinstance(progress, (int, float)) or not 0 <= progress <= 100:
        raise ValidationError("Invalid progress value")

    attempt = get_print_attempt(attempt_id)
    attempt.progress = float(progress)
    attempt.progress_reported_at = utcnow()
    db.session.commit()

    logger.debug("Print attempt %s progress %.1f", attempt.id, attempt.progress)
    return attempt


def record_print_outcome(
    attempt_id: int,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    succeeded: Optional[bool] = None,
    note: Optional[str] = None,
) -> PrintAttempt:
    """Print-machine timestamps and outcome. Acceptance is not touched here."""
    attempt = get_print_attempt(attempt_id)

    start = started_at or attempt.print_started_at
    if completed_at and start and completed_at < start:
        raise ValidationError("print completed_at is before started_at")

    if started_at is not None:
        attempt.print_started_at = started_at
    if completed_at is not None:
        attempt.print_completed_at = completed_at
    if succeeded is not None:
        attempt.succeeded = bool(succeeded)
    if note is not None:
        attempt.note = note

    db.session.commit()
    return attempt


def record_print_logs(attempt_id: int, logs) -> PrintAttempt:
    if not isinstance(logs, str):
        raise ValidationError("Invalid logs data")

    attempt = get_print_attempt(attempt_id)
    attempt.logs = logs
    db.session.commit()
    return attempt
