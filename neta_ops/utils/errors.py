"""Standardised API error responses.

Usage
-----
    from neta_ops.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Report not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")

Service exceptions (``neta_ops.core.exceptions``) never reach a view
unhandled: ``register_error_handlers`` maps each type to a JSON body

    {"error", "code", "category", "retryable", "details"}
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from neta_ops.core.exceptions import (
    AuthorizationError,
    ConcurrentModificationError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 (malformed) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"

    # Permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 5xx
    DEPENDENCY = "ERR_DEPENDENCY"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.DEPENDENCY: 503,
    E.INTERNAL: 500,
}

# exception type → error code (most specific first)
_EXCEPTION_CODES: list[tuple[type[WorkflowError], str]] = [
    (ValidationError, E.VALIDATION_CONSTRAINT),
    (NotFoundError, E.NOT_FOUND),
    (InvalidTransitionError, E.CONFLICT_STATE),
    (ConcurrentModificationError, E.CONFLICT_CONCURRENT),
    (AuthorizationError, E.FORBIDDEN),
    (DependencyError, E.DEPENDENCY),
]


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    category: str | None = None,
    retryable: bool | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (current/attempted status, context, ...).
    category, retryable : optional
        Error family reported to the client ("user" / "system").

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if category is not None:
        body["category"] = category
    if retryable is not None:
        body["retryable"] = retryable
    if details:
        body["details"] = details

    return jsonify(body), http_status


def workflow_error_response(exc: WorkflowError):
    """Translate a service exception into an ``api_error`` response."""
    code = E.INTERNAL
    for exc_type, exc_code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            code = exc_code
            break
    if isinstance(exc, AuthorizationError) and exc.user_id is None:
        code = E.UNAUTHENTICATED

    details = {**exc.details, **exc.context}
    details = {k: v for k, v in details.items() if v is not None}
    return api_error(
        code,
        exc.message,
        details=details,
        category=exc.category,
        retryable=exc.retryable,
    )


def register_error_handlers(app) -> None:
    """Install JSON handlers for the workflow exception taxonomy and HTTP errors."""

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(exc):
        log = logger.warning if exc.category == "system" else logger.info
        log(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc,
            extra={k: v for k, v in exc.context.items() if k in _LOG_KEYS},
        )
        return workflow_error_response(exc)

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


_LOG_KEYS = ("report_id", "asset_id", "job_id", "actor_id", "action", "from_status", "to_status")
