# geoqueue/models/print_attempt.py
from geoqueue.extensions import db
from geoqueue.utils.timeutil import utcnow


class PrintAttempt(db.Model):
    __tablename__ = "print_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # Unique: a second result report for the same job must fail here
    job_id = db.Column(
        db.Integer,
        db.ForeignKey("processing_jobs.id"),
        unique=True,
        nullable=False
    )

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Print-machine timestamps (not the job ones)
    print_started_at = db.Column(db.DateTime, nullable=True)
    print_completed_at = db.Column(db.DateTime, nullable=True)
    succeeded = db.Column(db.Boolean, nullable=True)

    progress = db.Column(db.Float, nullable=False, default=0)  # 0..100
    progress_reported_at = db.Column(db.DateTime, nullable=True)

    note = db.Column(db.Text, nullable=True)
    logs = db.Column(db.Text, nullable=True)

    # None = undecided, True = accepted, False = rejected
    acceptance = db.Column(db.Boolean, nullable=True)

    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    job = db.relationship("ProcessingJob", back_populates="print_attempts")

    @property
    def acceptance_label(self) -> str:
        if self.acceptance is None:
            return "undecided"
        return "accepted" if self.acceptance else "rejected"
