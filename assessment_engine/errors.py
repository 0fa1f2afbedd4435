"""Error kinds raised by the assessment engine.

Every error here is recoverable by the caller: the engine never leaves a
partial write behind when it raises one of them. Store connectivity failures
are not wrapped and propagate unchanged.
"""


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "engine_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(EngineError):
    """Malformed exam or question definition, or a malformed command argument."""

    code = "validation_error"


class NotFoundError(EngineError):
    code = "not_found"


class PermissionDeniedError(EngineError):
    """The acting subject lacks the role or ownership the operation needs."""

    code = "permission_denied"


class InvalidStateError(EngineError):
    """Operation attempted from a state that disallows it."""

    code = "invalid_state"


class ImmutableContentError(InvalidStateError):
    """Question content cannot change once an attempt references the exam."""

    code = "immutable_content"


class NotEligibleError(EngineError):
    """Student not assigned, outside the schedule window, or out of attempts."""

    code = "not_eligible"


class DuplicateAttemptError(EngineError):
    code = "duplicate_attempt"


class DuplicateAssignmentError(EngineError):
    code = "duplicate_assignment"


class AttemptExpiredError(EngineError):
    """Time limit exceeded; the attempt has already been moved to ``timeout``."""

    code = "attempt_expired"
