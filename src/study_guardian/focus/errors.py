"""Error taxonomy for the focus timer."""

from __future__ import annotations


class StudyGuardianError(Exception):
    """Base class for all Study Guardian errors."""


class InvalidTransition(StudyGuardianError):
    """Raised when an engine operation is not valid for the current run state."""

    def __init__(self, operation: str, run_state: object) -> None:
        state = getattr(run_state, "value", run_state)
        super().__init__(f"Cannot {operation} while timer is {state}")
        self.operation = operation
        self.run_state = run_state


class ConfigurationInvalid(StudyGuardianError, ValueError):
    """Raised when a timer configuration violates its invariants."""


class ApiError(StudyGuardianError):
    """Raised when the REST backend is unreachable or answers with an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SubmissionFailure(ApiError):
    """Raised when a session record could not be delivered to the API."""


class NotificationFailure(StudyGuardianError):
    """A notification target failed. Logged, never propagated."""

    def __init__(self, target: str, cause: BaseException) -> None:
        super().__init__(f"{target} notification failed: {cause}")
        self.target = target
        self.cause = cause
