# Importa modelos para que Alembic/SQLAlchemy los detecte
from .user import Organization, User
from .api_key import ApiKey
from .design import Design
from .processing_job import ProcessingJob
from .print_attempt import PrintAttempt
from .audit import AuditLog
