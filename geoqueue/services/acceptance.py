# geoqueue/services/acceptance.py
import logging
from typing import Optional

from sqlalchemy import update

from geoqueue.extensions import db
from geoqueue.models.print_attempt import PrintAttempt
from geoqueue.services.audit import audit_log
from geoqueue.services.errors import AlreadyDecided, NotReady, ValidationError
from geoqueue.services.print_queue import get_print_attempt_for_org

logger = logging.getLogger(__name__)

COMPLETE_ABOVE = 99


def decide(
    attempt_id: int,
    accept: bool,
    org_id: Optional[int],
    note: Optional[str] = None,
    user_id: Optional[int] = None,
) -> PrintAttempt:
    """
    One-shot accept/reject of a finished print.

    Irreversible: undoing a decision means a new print attempt, never an
    update of this one.
    """
    if not isinstance(accept, bool):
        raise ValidationError("accept must be a boolean")

    attempt = get_print_attempt_for_org(attempt_id, org_id)

    if attempt.progress is None or attempt.progress <= COMPLETE_ABOVE:
        raise NotReady(f"Print must be completed (progress > {COMPLETE_ABOVE}%) before acceptance decision")
    if attempt.acceptance is not None:
        raise AlreadyDecided("Print has already been accepted or rejected")

    values = {"acceptance": accept}
    if note:
        values["note"] = note

    # Condicional: dos decisiones simultáneas no pueden ganar ambas
    result = db.session.execute(
        update(PrintAttempt)
        .where(PrintAttempt.id == attempt.id, PrintAttempt.acceptance.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise AlreadyDecided("Print has already been accepted or rejected")

    audit_log(user_id, "PRINT_ACCEPTED" if accept else "PRINT_REJECTED", "print_attempt", attempt.id, {"note": note})
    db.session.commit()

    logger.info("Print attempt %s %s", attempt.id, "accepted" if accept else "rejected")
    return get_print_attempt_for_org(attempt_id, org_id)
