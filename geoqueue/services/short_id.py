# geoqueue/services/short_id.py
import logging
import secrets

from geoqueue.extensions import db
from geoqueue.models.processing_job import ProcessingJob
from geoqueue.services.errors import FatalError

logger = logging.getLogger(__name__)

# Crockford base32: sin I, L, O, U
ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
SHORT_ID_LENGTH = 4  # 32**4 = 1,048,576 combinaciones

# "U" nunca sale en los códigos generados, así que no choca con ninguno
DEBUG_SHORT_ID = "DBUG"

_DECODE_FIXES = str.maketrans({"O": "0", "I": "1", "L": "1"})


def encode(value: int, width: int = SHORT_ID_LENGTH) -> str:
    chars = []
    while value:
        value, rem = divmod(value, len(ALPHABET))
        chars.append(ALPHABET[rem])
    return "".join(reversed(chars)).rjust(width, ALPHABET[0])[-width:]


def normalize(code: str) -> str | None:
    """Normalizes human input: case-insensitive, O->0, I/L->1. None if not a short id."""
    if not code:
        return None
    cleaned = code.strip().upper().replace("-", "")
    if cleaned == DEBUG_SHORT_ID:
        return cleaned
    cleaned = cleaned.translate(_DECODE_FIXES)
    if len(cleaned) != SHORT_ID_LENGTH or any(c not in ALPHABET for c in cleaned):
        return None
    return cleaned


def generate_short_id(max_attempts: int = 10) -> str:
    """
    Random 4-char code, checked against existing jobs.

    Collisions are rare enough at this width that running out of attempts
    means something is flooding the id space; that is raised as FatalError.
    """
    for attempt in range(max_attempts):
        code = encode(secrets.randbelow(len(ALPHABET) ** SHORT_ID_LENGTH))

        exists = db.session.query(ProcessingJob.id).filter(ProcessingJob.short_id == code).first()
        if not exists:
            return code

        logger.warning("Short id collision: %s (attempt %d/%d)", code, attempt + 1, max_attempts)

    raise FatalError(f"Failed to generate unique short id after {max_attempts} attempts")
