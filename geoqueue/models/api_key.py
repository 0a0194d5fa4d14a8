import secrets

from werkzeug.security import generate_password_hash, check_password_hash

from geoqueue.extensions import db
from geoqueue.utils.timeutil import utcnow

# Capabilities understood by the queue endpoints
QUEUE_READ = "geometry-queue:read"
QUEUE_WRITE = "geometry-queue:write"
PRINT_READ = "print-queue:read"
PRINT_WRITE = "print-queue:write"


class ApiKey(db.Model):
    """Capability-scoped credential used by the processing agent and printers."""

    __tablename__ = "api_keys"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    # Non-secret prefix so validation only hashes one candidate
    key_prefix = db.Column(db.String(12), nullable=False, index=True)
    key_hash = db.Column(db.String(255), nullable=False)

    permissions = db.Column(db.JSON, nullable=False, default=list)

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id"),
        nullable=True
    )

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime, nullable=True)

    @classmethod
    def issue(cls, name: str, permissions: list[str], organization_id: int | None = None):
        """Creates a key row (not committed). Returns (row, raw_key); the raw key is shown once."""
        raw = f"gq_{secrets.token_urlsafe(32)}"
        row = cls(
            name=name,
            key_prefix=raw[:12],
            key_hash=generate_password_hash(raw),
            permissions=list(permissions),
            organization_id=organization_id,
        )
        db.session.add(row)
        return row, raw

    @classmethod
    def authenticate(cls, raw: str):
        if not raw or len(raw) < 12:
            return None

        candidates = cls.query.filter_by(key_prefix=raw[:12], is_active=True).all()
        for key in candidates:
            if check_password_hash(key.key_hash, raw):
                key.last_used_at = utcnow()
                db.session.commit()
                return key
        return None

    def allows(self, capability: str) -> bool:
        return capability in (self.permissions or [])
