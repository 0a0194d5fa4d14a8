from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from geoqueue.extensions import db, login_manager
from geoqueue.utils.timeutil import utcnow


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default="member")  # admin | member
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id"),
        nullable=True
    )

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    organization = db.relationship("Organization", backref=db.backref("users", lazy=True))

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        return check_password_hash(self.password_hash, raw)


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, int(user_id))
