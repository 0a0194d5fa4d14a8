class QueueError(Exception):
    """Error safe to report to the caller, mapped to an HTTP status."""

    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QueueError):
    status_code = 400
    code = "validation_error"


class NotFound(QueueError):
    status_code = 404
    code = "not_found"


class Forbidden(QueueError):
    status_code = 403
    code = "forbidden"


class InvalidState(QueueError):
    status_code = 409
    code = "invalid_state"


class NotStarted(InvalidState):
    code = "not_started"


class NotReady(InvalidState):
    code = "not_ready"


class AlreadyDecided(InvalidState):
    code = "already_decided"


class FatalError(Exception):
    """System-level fault (id space exhausted, integrity breach). Never handled."""
