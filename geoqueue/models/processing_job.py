# geoqueue/models/processing_job.py
from geoqueue.extensions import db
from geoqueue.services.storage import BlobRef, InlineFile, RemoteFile, StoredFile
from geoqueue.utils.timeutil import utcnow

FILE_SLOTS = ("geometry", "print")


class ProcessingJob(db.Model):
    __tablename__ = "processing_jobs"

    id = db.Column(db.Integer, primary_key=True)

    # 4 caracteres Crockford base32 (los jobs debug usan un código reservado)
    short_id = db.Column(db.String(8), unique=True, nullable=True)

    owner_org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    design_id = db.Column(db.Integer, db.ForeignKey("designs.id"), nullable=False)
    design_schema_version = db.Column(db.Integer, nullable=False, default=1)

    parameters = db.Column(db.JSON, nullable=False)

    customer_note = db.Column(db.String(500), nullable=True)
    customer_ref = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    started_at = db.Column(db.DateTime, nullable=True, index=True)
    completed_at = db.Column(db.DateTime, nullable=True, index=True)
    succeeded = db.Column(db.Boolean, nullable=True)  # solo tiene sentido con completed_at

    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    is_debug = db.Column(db.Boolean, nullable=False, default=False)
    debug_source_job_id = db.Column(db.Integer, nullable=True)

    processing_log = db.Column(db.Text, nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    # Cada slot es bytes inline o puntero a blob, nunca ambos
    geometry_file_name = db.Column(db.String(255), nullable=True)
    geometry_file_contents = db.Column(db.LargeBinary, nullable=True)
    geometry_blob_pathname = db.Column(db.String(512), nullable=True)
    geometry_blob_url = db.Column(db.Text, nullable=True)
    geometry_content_type = db.Column(db.String(100), nullable=True)
    geometry_size = db.Column(db.Integer, nullable=True)

    print_file_name = db.Column(db.String(255), nullable=True)
    print_file_contents = db.Column(db.LargeBinary, nullable=True)
    print_blob_pathname = db.Column(db.String(512), nullable=True)
    print_blob_url = db.Column(db.Text, nullable=True)
    print_content_type = db.Column(db.String(100), nullable=True)
    print_size = db.Column(db.Integer, nullable=True)

    design = db.relationship("Design", lazy=True)
    creator = db.relationship("User", lazy=True)
    owner_org = db.relationship("Organization", lazy=True)

    print_attempts = db.relationship(
        "PrintAttempt",
        back_populates="job",
        lazy=True
    )

    @property
    def status(self) -> str:
        if self.started_at is None:
            return "PENDING"
        if self.completed_at is None:
            return "STARTED"
        return "SUCCEEDED" if self.succeeded else "FAILED"

    def get_file(self, slot: str) -> StoredFile | None:
        """Pointer first; inline bytes only when there is no pointer."""
        _check_slot(slot)
        filename = getattr(self, f"{slot}_file_name") or ""
        pathname = getattr(self, f"{slot}_blob_pathname")
        if pathname:
            return RemoteFile(
                filename=filename,
                ref=BlobRef(
                    url=getattr(self, f"{slot}_blob_url") or "",
                    pathname=pathname,
                    content_type=getattr(self, f"{slot}_content_type") or "application/octet-stream",
                    size=getattr(self, f"{slot}_size") or 0,
                ),
            )
        data = getattr(self, f"{slot}_file_contents")
        if data is not None:
            return InlineFile(filename=filename, data=bytes(data))
        return None

    def set_file(self, slot: str, stored: StoredFile) -> None:
        _check_slot(slot)
        setattr(self, f"{slot}_file_name", stored.filename)
        if isinstance(stored, RemoteFile):
            setattr(self, f"{slot}_file_contents", None)
            setattr(self, f"{slot}_blob_pathname", stored.ref.pathname)
            setattr(self, f"{slot}_blob_url", stored.ref.url)
            setattr(self, f"{slot}_content_type", stored.ref.content_type)
            setattr(self, f"{slot}_size", stored.ref.size)
        elif isinstance(stored, InlineFile):
            setattr(self, f"{slot}_file_contents", stored.data)
            setattr(self, f"{slot}_blob_pathname", None)
            setattr(self, f"{slot}_blob_url", None)
            setattr(self, f"{slot}_content_type", None)
            setattr(self, f"{slot}_size", len(stored.data))
        else:
            raise TypeError(f"unsupported stored file: {stored!r}")

    def file_names(self) -> dict:
        return {f"{slot}_file_name": getattr(self, f"{slot}_file_name") for slot in FILE_SLOTS}


def _check_slot(slot: str) -> None:
    if slot not in FILE_SLOTS:
        raise ValueError(f"unknown file slot: {slot}")
