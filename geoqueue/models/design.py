from geoqueue.extensions import db
from geoqueue.utils.timeutil import utcnow


class Design(db.Model):
    __tablename__ = "designs"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    algorithm_name = db.Column(db.String(120), nullable=False)

    # [{InputName, InputType: Float|Integer|Text, NumberMin, NumberMax, TextMinLen, TextMaxLen}, ...]
    parameter_schema = db.Column(db.JSON, nullable=False, default=list)
    schema_version = db.Column(db.Integer, nullable=False, default=1)

    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
