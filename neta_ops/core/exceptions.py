"""
Workflow exception hierarchy.

Every service in the report lifecycle core raises one of these types.
Blueprints register handlers against them once (see
``neta_ops.utils.errors.register_error_handlers``) and get consistent
HTTP status codes and user-facing messages everywhere.

Two families:
  * user errors (``category == "user"``) — the caller can't do that:
    ValidationError, NotFoundError, InvalidTransitionError, AuthorizationError.
  * system errors (``category == "system"``) — something went wrong, try again:
    ConcurrentModificationError, DependencyError.

Usage:
    from neta_ops.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Report", resource_id=report_id)
    raise ValidationError("Comments are required to reject a report",
                          details={"comments": "required"})
"""


class WorkflowError(Exception):
    """Base class for all lifecycle errors.

    ``context`` collects workflow information (action, report id, attempted
    transition) added by the layer that re-raises the error. It is logged and
    returned to API clients under ``details``.
    """

    category = "user"
    retryable = False

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = dict(details or {})
        self.context: dict = {}
        super().__init__(message)

    def add_context(self, **context) -> "WorkflowError":
        """Attach workflow context without overwriting values set closer to the cause."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(WorkflowError):
    """Malformed input or a violated business rule on input (empty title, missing comments).

    Maps to HTTP 422. Always recoverable locally: fix the input and retry.
    """


class NotFoundError(WorkflowError):
    """A referenced Report, Asset or link does not exist.

    Args:
        resource: Human-readable entity name ("Report", "Asset", "JobAsset").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource})


class InvalidTransitionError(WorkflowError):
    """The requested status change is not a sanctioned edge from the current state.

    Carries both states so the UI can explain the conflict.
    """

    def __init__(
        self,
        current_status: str,
        attempted_status: str | None,
        action: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.current_status = current_status
        self.attempted_status = attempted_status
        self.action = action
        if action:
            msg = f"Cannot '{action}' a report in status '{current_status}'"
        else:
            msg = f"Invalid transition: {current_status} → {attempted_status}"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            details={"current_status": current_status, "attempted_status": attempted_status},
        )


class AuthorizationError(WorkflowError):
    """The actor lacks the role required for the requested operation.

    Never downgraded to a no-op; maps to HTTP 403.
    """

    def __init__(self, user_id: str | None, permission: str, role: str | None = None) -> None:
        self.user_id = user_id
        self.permission = permission
        self.role = role
        if user_id is None:
            msg = "Authentication required"
        else:
            msg = f"User {user_id} ({role or 'unknown role'}) is not allowed to '{permission}'"
        super().__init__(msg, details={"required_permission": permission})


class ConcurrentModificationError(WorkflowError):
    """Optimistic-concurrency conflict: the report changed since it was read.

    The caller should re-fetch current state and decide whether to retry.
    """

    category = "system"
    retryable = True

    def __init__(
        self,
        resource_id: str,
        expected_version: int | None = None,
        current_version: int | None = None,
        resource: str = "Report",
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.current_version = current_version
        msg = f"{resource} {resource_id} was modified concurrently"
        if expected_version is not None:
            msg += f" (expected version {expected_version}"
            if current_version is not None:
                msg += f", found {current_version}"
            msg += ")"
        super().__init__(
            msg,
            details={"expected_version": expected_version, "current_version": current_version},
        )


class DependencyError(WorkflowError):
    """The underlying store failed or timed out; the operation was not applied.

    Transient. Callers may retry with backoff; the engine never retries itself.
    """

    category = "system"
    retryable = True
