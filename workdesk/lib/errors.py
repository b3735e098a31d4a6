"""
Error taxonomy for workdesk operations.

Every failure surfaced to a caller is a WorkdeskError carrying a short label
and a human-readable message. None of them are retried automatically and
none are fatal to the process.
"""


class WorkdeskError(Exception):
    """Base class for labeled operation failures."""

    label = "Error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.label}: {message}")


class Forbidden(WorkdeskError):
    """Actor lacks the capability, or is not the task's assignee."""

    label = "Forbidden"

    def __init__(self, action: str, actor_id: str = "", reason: str = ""):
        self.action = action
        self.actor_id = actor_id
        message = f"not allowed to {action}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class OverdueLocked(WorkdeskError):
    """Temporal lock blocks a non-privileged status change."""

    label = "OverdueLocked"

    def __init__(self, task_id: str, due_date):
        self.task_id = task_id
        self.due_date = due_date
        super().__init__(
            f"task {task_id} was due {due_date}; status can no longer be changed. "
            "Please contact your manager."
        )


class ValidationFailed(WorkdeskError):
    """Missing required field, bad value, or unknown identifier."""

    label = "ValidationFailed"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message + (f" (field: {field})" if field else ""))


class StoreFailure(WorkdeskError):
    """The record store or notification channel rejected the call."""

    label = "StoreFailure"


class StorageFailure(WorkdeskError):
    """Object upload, removal or signed-link generation failed."""

    label = "StorageFailure"


def not_found(collection: str, record_id: str) -> ValidationFailed:
    """Build the error raised when an identifier does not resolve."""
    return ValidationFailed(f"{collection} record '{record_id}' not found")
