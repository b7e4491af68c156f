"""
Report Store — technical reports and their revision history.

No authorization logic lives here. Every status change goes through
``append_revision``, which validates the edge against REPORT_TRANSITIONS and
applies it with a conditional UPDATE keyed on (id, status, current_version):

    UPDATE technical_reports
       SET status = :to, current_version = current_version + 1, ...
     WHERE id = :id AND status = :from AND current_version = :version

Zero affected rows means another writer got there first. Revision rows are
append-only; (report_id, version) is unique.

All functions flush only. The caller owns the transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from sqlalchemy import delete, select, update

from neta_ops.core.exceptions import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from neta_ops.models import db
from neta_ops.models.asset import Asset
from neta_ops.models.report import (
    REPORT_STATUSES,
    AssetReport,
    ReportRevision,
    TechnicalReport,
    validate_report_transition,
)

logger = logging.getLogger(__name__)

# Columns append_revision may set alongside the status change.
_REVISION_FIELDS = frozenset({
    "submitted_by",
    "submitted_at",
    "reviewed_by",
    "reviewed_at",
    "review_comments",
})


def _utcnow():
    return datetime.now(timezone.utc)


def _require(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    return str(value).strip()


# ── Create / read ────────────────────────────────────────────────────────────


def create_draft_report(
    job_id: str,
    title: str,
    report_type: str,
    payload: Mapping,
    author_user_id: str,
    comments: str | None = None,
) -> TechnicalReport:
    """Create a draft report with its first revision (version 1, draft).

    Raises:
        ValidationError: missing job_id/title/report_type/author, or the
            payload is not a mapping.
    """
    job_id = _require(job_id, "job_id")
    title = _require(title, "title")
    report_type = _require(report_type, "report_type")
    author_user_id = _require(author_user_id, "author_user_id")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Report payload must be an object", details={"payload": "invalid"})

    report = TechnicalReport(
        job_id=job_id,
        title=title,
        report_type=report_type,
        status="draft",
        current_version=1,
        report_data=dict(payload),
        created_by=author_user_id,
    )
    db.session.add(report)
    db.session.flush()

    db.session.add(ReportRevision(
        report_id=report.id,
        version=1,
        status="draft",
        user_id=author_user_id,
        comments=comments or "Initial draft",
    ))
    db.session.flush()
    logger.info(
        "Draft report created",
        extra={"report_id": report.id, "job_id": job_id, "actor_id": author_user_id},
    )
    return report


def get_report(report_id: str) -> TechnicalReport:
    report = db.session.get(TechnicalReport, report_id) if report_id else None
    if report is None:
        raise NotFoundError("Report", report_id)
    return report


def update_draft_report(
    report_id: str,
    title: str | None = None,
    payload: Mapping | None = None,
) -> TechnicalReport:
    """Edit a draft's title and/or payload. The version does not change.

    Raises:
        InvalidTransitionError: the report is no longer a draft.
    """
    report = get_report(report_id)
    if report.status != "draft":
        raise InvalidTransitionError(
            report.status, None, action="edit", reason="only draft reports can be edited",
        )
    if title is not None:
        report.title = _require(title, "title")
    if payload is not None:
        if not isinstance(payload, Mapping):
            raise ValidationError("Report payload must be an object", details={"payload": "invalid"})
        report.report_data = dict(payload)
    db.session.flush()
    return report


# ── Status changes ───────────────────────────────────────────────────────────


def append_revision(
    report_id: str,
    new_status: str,
    user_id: str,
    comments: str | None = None,
    expected_version: int | None = None,
    fields: dict | None = None,
) -> TechnicalReport:
    """Move a report to ``new_status`` and append exactly one revision.

    Args:
        report_id: Report to change.
        new_status: Target status; must be a sanctioned edge from the current one.
        user_id: Actor recorded on the revision.
        comments: Revision comment.
        expected_version: When given, the version the caller last read.
        fields: Extra report columns written in the same UPDATE
            (submitted_at, reviewed_by, ...).

    Raises:
        NotFoundError: unknown report.
        ConcurrentModificationError: version mismatch, or the conditional
            update matched no row.
        InvalidTransitionError: the edge is not in REPORT_TRANSITIONS.
    """
    report = get_report(report_id)
    old_status = report.status
    old_version = report.current_version

    if expected_version is not None and expected_version != old_version:
        raise ConcurrentModificationError(report_id, expected_version, old_version)

    if new_status not in REPORT_STATUSES or not validate_report_transition(old_status, new_status):
        raise InvalidTransitionError(old_status, new_status)

    unknown = set(fields or {}) - _REVISION_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields cannot be set on a status change: {', '.join(sorted(unknown))}",
        )

    values = dict(fields or {})
    values.update(
        status=new_status,
        current_version=old_version + 1,
        updated_at=_utcnow(),
    )
    result = db.session.execute(
        update(TechnicalReport)
        .where(
            TechnicalReport.id == report_id,
            TechnicalReport.status == old_status,
            TechnicalReport.current_version == old_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Conditional report update matched no row",
            extra={"report_id": report_id, "from_status": old_status, "to_status": new_status},
        )
        raise ConcurrentModificationError(report_id, expected_version, old_version)

    db.session.add(ReportRevision(
        report_id=report_id,
        version=old_version + 1,
        status=new_status,
        user_id=user_id,
        comments=comments,
    ))
    db.session.flush()
    db.session.refresh(report)
    return report


# ── Report ↔ Asset links ─────────────────────────────────────────────────────


def get_report_by_asset_id(asset_id: str) -> TechnicalReport | None:
    stmt = (
        select(TechnicalReport)
        .join(AssetReport, AssetReport.report_id == TechnicalReport.id)
        .where(AssetReport.asset_id == asset_id)
    )
    return db.session.execute(stmt).scalars().first()


def link_report_to_asset(report_id: str, asset_id: str) -> AssetReport:
    """Create the Report ↔ Asset link. Re-linking the same pair is a no-op.

    Raises:
        NotFoundError: unknown report or asset.
        ValidationError: the asset already backs a different report.
    """
    get_report(report_id)
    if db.session.get(Asset, asset_id) is None:
        raise NotFoundError("Asset", asset_id)

    existing = db.session.execute(
        select(AssetReport).where(AssetReport.asset_id == asset_id)
    ).scalars().first()
    if existing is not None:
        if existing.report_id == report_id:
            return existing
        raise ValidationError(
            f"Asset {asset_id} is already linked to report {existing.report_id}",
            details={"asset_id": asset_id, "linked_report_id": existing.report_id},
        )

    link = AssetReport(report_id=report_id, asset_id=asset_id)
    db.session.add(link)
    db.session.flush()
    return link


def get_linked_asset(report_id: str) -> Asset | None:
    stmt = (
        select(Asset)
        .join(AssetReport, AssetReport.asset_id == Asset.id)
        .where(AssetReport.report_id == report_id)
    )
    return db.session.execute(stmt).scalars().first()


def delete_report(report_id: str) -> None:
    """Physically remove a report, its revisions and its asset links.

    Only the asset revert path calls this.
    """
    report = get_report(report_id)
    db.session.execute(delete(AssetReport).where(AssetReport.report_id == report_id))
    db.session.delete(report)
    db.session.flush()
    logger.info("Report deleted", extra={"report_id": report_id, "job_id": report.job_id})
