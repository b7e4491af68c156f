"""Shared utility functions.

parse_date:            query-string dates (returns None on bad input)
workflow_transaction:  commit-or-rollback scope for every lifecycle write
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from neta_ops.core.exceptions import (
    ConcurrentModificationError,
    DependencyError,
    WorkflowError,
)
from neta_ops.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


# ── Database transaction helper ──────────────────────────────────────────────

def apply_statement_timeout(timeout_ms=None):
    """Bound every statement of the current transaction.

    Falls back to ``STORE_TIMEOUT_MS``. Only PostgreSQL honours
    ``SET LOCAL statement_timeout``; other dialects are left alone.
    """
    if timeout_ms is None and has_app_context():
        timeout_ms = current_app.config.get("STORE_TIMEOUT_MS")
    if not timeout_ms:
        return
    if db.session.get_bind().dialect.name != "postgresql":
        return
    db.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))


@contextmanager
def workflow_transaction(timeout_ms=None, **context):
    """Run a block of store calls as one transaction.

    Usage::

        with workflow_transaction(action="approve", report_id=rid):
            report = report_store.append_revision(...)
            asset_registry.update_asset_status(...)

    On success the session is committed. On any failure it is rolled back
    and the error re-raised with ``context`` attached:

    WorkflowError      → re-raised as is
    IntegrityError     → ConcurrentModificationError (duplicate revision / link)
    SQLAlchemyError    → DependencyError (store unavailable or timed out)
    """
    try:
        apply_statement_timeout(timeout_ms)
        yield
        db.session.commit()
    except WorkflowError as exc:
        db.session.rollback()
        exc.add_context(**context)
        logger.info(
            "Workflow operation refused: %s", exc,
            extra={"error_type": type(exc).__name__, **_log_fields(context)},
        )
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig, extra=_log_fields(context))
        resource_id = context.get("report_id") or context.get("asset_id") or "unknown"
        resource = "Report" if context.get("report_id") else "Asset"
        raise ConcurrentModificationError(
            resource_id, resource=resource,
        ).add_context(**context) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error during workflow operation", extra=_log_fields(context))
        raise DependencyError(
            "The report store is unavailable; the operation was not applied",
        ).add_context(**context) from exc
    except Exception:
        db.session.rollback()
        raise


_LOG_FIELDS = ("report_id", "asset_id", "job_id", "actor_id", "action", "from_status", "to_status")


def _log_fields(context: dict) -> dict:
    return {k: context[k] for k in _LOG_FIELDS if context.get(k) is not None}
