"""
Report Lifecycle Engine — the report state machine and its side effects.

    draft ──submit──▶ submitted ──approve──▶ approved ──archive──▶ archived
                         │  ▲                                     ▲
                      reject └──resubmit── rejected ──archive──────┘

Every public operation:
    1. checks the actor's permission (before looking at state),
    2. validates the edge against REPORT_ACTIONS,
    3. appends exactly one revision through the report store,
    4. syncs the backing asset's status,
    5. writes an audit row and a ``reportStatusChanged`` notification,
all inside one ``workflow_transaction``. Any failure rolls everything back
and re-raises with workflow context attached.

Asset status follows the report:
    submitted → ready_for_review, approved → approved, rejected → issue.

The asset side has one destructive edge: reverting a ``ready_for_review``
report asset to ``in_progress`` deletes the submitted report and its link.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import select

from neta_ops.core.exceptions import (
    AuthorizationError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from neta_ops.models import db
from neta_ops.models.asset import (
    ASSET_STATUSES,
    REPORT_REF_PREFIX,
    Asset,
    normalize_template_slug,
    report_ref_tail,
)
from neta_ops.models.audit import write_audit
from neta_ops.models.report import REPORT_ACTIONS, TechnicalReport
from neta_ops.services import asset_registry, report_store
from neta_ops.services.asset_registry import build_report_ref
from neta_ops.services.notification import NotificationService
from neta_ops.services.permission import ActorContext, check_permission, has_permission
from neta_ops.utils.helpers import workflow_transaction

logger = logging.getLogger(__name__)

# action → permission required
_ACTION_PERMISSION = {
    "create": "report_create",
    "edit": "report_edit_draft",
    "submit": "report_submit",
    "resubmit": "report_submit",
    "approve": "report_approve",
    "reject": "report_reject",
    "archive": "report_archive",
}

# Report status → status the backing asset takes
_ASSET_STATUS_FOR_REPORT = {
    "submitted": "ready_for_review",
    "approved": "approved",
    "rejected": "issue",
}

_DECISIONS = {
    "approved": "approve",
    "approve": "approve",
    "rejected": "reject",
    "reject": "reject",
}

DEFAULT_APPROVAL_COMMENT = "Report approved"
DEFAULT_REVIEWER_RECIPIENT = "reviewers"
# report_type of drafts created from an asset without a template
DEFAULT_REPORT_TYPE = "Technical Report"


def _utcnow():
    return datetime.now(timezone.utc)


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _actor_id(actor: ActorContext | None) -> str | None:
    return actor.user_id if actor is not None else None


def _role(actor: ActorContext) -> str:
    return getattr(actor.role, "value", actor.role)


def _check_ownership(report: TechnicalReport, actor: ActorContext, permission: str) -> None:
    """Standard users may only act on reports they authored."""
    if has_permission(actor, "report_submit_any"):
        return
    if report.created_by != actor.user_id:
        raise AuthorizationError(actor.user_id, permission, role=_role(actor))


# ── Asset lookup ─────────────────────────────────────────────────────────────


def _assets_referencing(report_id: str) -> list[Asset]:
    """Report assets whose file_url reference ends with ``report_id``."""
    stmt = select(Asset).where(
        Asset.file_url.startswith(REPORT_REF_PREFIX),
        Asset.file_url.contains(report_id),
    )
    return [
        a for a in db.session.execute(stmt).scalars().all()
        if report_ref_tail(a.file_url) == report_id
    ]


def _resolve_asset(report: TechnicalReport, asset_id: str | None) -> Asset | None:
    """Find the asset backing ``report``: explicit id, existing link, then reference."""
    if asset_id:
        asset = asset_registry.get_asset(asset_id)
        if not asset.is_report:
            raise ValidationError(
                "Only report assets can back a report", details={"asset_id": asset_id},
            )
        ref = asset.report_ref
        referenced = report_ref_tail(asset.file_url)
        if ref is not None and ref.report_id and referenced != report.id:
            raise ValidationError(
                f"Asset {asset_id} references report {referenced}, not {report.id}",
                details={"asset_id": asset_id},
            )
        return asset

    linked = report_store.get_linked_asset(report.id)
    if linked is not None:
        return linked

    candidates = _assets_referencing(report.id)
    return candidates[0] if candidates else None


def _find_report_for_asset(asset: Asset) -> TechnicalReport | None:
    report = report_store.get_report_by_asset_id(asset.id)
    if report is not None:
        return report
    ref = asset.report_ref
    if ref is not None and ref.report_id:
        return db.session.get(TechnicalReport, report_ref_tail(asset.file_url))
    return None


def _sync_asset(asset: Asset, report: TechnicalReport, actor: ActorContext) -> None:
    target = _ASSET_STATUS_FOR_REPORT.get(report.status)
    if target is None or asset.status == target:
        return
    old = asset.status
    asset_registry.update_asset_status(asset.id, target)
    write_audit(
        entity_type="asset",
        entity_id=asset.id,
        action="asset.status",
        actor=actor.user_id,
        actor_role=_role(actor),
        job_id=report.job_id,
        diff={"status": {"old": old, "new": target}, "report_id": report.id},
    )


# ── Core transition (no commit) ──────────────────────────────────────────────


def _apply_action(
    action: str,
    report_id: str,
    actor: ActorContext,
    asset_id: str | None = None,
    comments: str | None = None,
    expected_version: int | None = None,
) -> TechnicalReport:
    rule = REPORT_ACTIONS.get(action)
    if rule is None:
        raise ValidationError(
            f"Unknown action '{action}'. Must be one of: {', '.join(REPORT_ACTIONS)}",
            details={"action": action},
        )
    permission = _ACTION_PERMISSION[action]
    check_permission(actor, permission)

    report = report_store.get_report(report_id)
    if action in ("submit", "resubmit"):
        _check_ownership(report, actor, permission)

    from_status = report.status
    to_status = rule["to"]
    if expected_version is not None and expected_version != report.current_version:
        raise ConcurrentModificationError(report_id, expected_version, report.current_version)
    if from_status not in rule["from"]:
        raise InvalidTransitionError(from_status, to_status, action=action)

    comments = (comments or "").strip() or None
    now = _utcnow()
    fields: dict = {}
    asset = None

    if action in ("submit", "resubmit"):
        asset = _resolve_asset(report, asset_id)
        if asset is None:
            raise NotFoundError("Asset", asset_id or f"for report {report_id}")
        fields.update(submitted_by=actor.user_id, submitted_at=now)
        if action == "resubmit":
            fields.update(reviewed_by=None, reviewed_at=None, review_comments=None)
    elif action in ("approve", "reject"):
        if action == "reject" and not comments:
            raise ValidationError(
                "Comments are required to reject a report", details={"comments": "required"},
            )
        if action == "approve" and not comments:
            comments = _config("DEFAULT_APPROVAL_COMMENT", DEFAULT_APPROVAL_COMMENT)
        fields.update(reviewed_by=actor.user_id, reviewed_at=now, review_comments=comments)
        asset = report_store.get_linked_asset(report.id)
        if asset is None:
            logger.warning(
                "Reviewed report has no linked asset",
                extra={"report_id": report_id, "action": action},
            )

    old_version = report.current_version
    report = report_store.append_revision(
        report_id,
        to_status,
        actor.user_id,
        comments=comments,
        expected_version=expected_version,
        fields=fields,
    )

    if action == "submit":
        report_store.link_report_to_asset(report.id, asset.id)
    if asset is not None:
        _sync_asset(asset, report, actor)

    write_audit(
        entity_type="report",
        entity_id=report.id,
        action=f"report.{action}",
        actor=actor.user_id,
        actor_role=_role(actor),
        job_id=report.job_id,
        diff={
            "status": {"old": from_status, "new": to_status},
            "version": {"old": old_version, "new": report.current_version},
            "comments": comments,
        },
    )
    recipient = (
        _config("REVIEWER_RECIPIENT", DEFAULT_REVIEWER_RECIPIENT)
        if to_status == "submitted" else report.created_by
    )
    NotificationService.report_status_changed(
        report, from_status, to_status, actor.user_id, recipient,
    )
    logger.info(
        "Report transition applied",
        extra={
            "report_id": report.id,
            "job_id": report.job_id,
            "actor_id": actor.user_id,
            "action": action,
            "from_status": from_status,
            "to_status": to_status,
        },
    )
    return report


def _transition(action, report_id, actor, asset_id=None, comments=None,
                expected_version=None, timeout_ms=None):
    context = {
        "action": action,
        "report_id": report_id,
        "asset_id": asset_id,
        "actor_id": _actor_id(actor),
    }
    rule = REPORT_ACTIONS.get(action)
    if rule is not None:
        context["to_status"] = rule["to"]
    with workflow_transaction(timeout_ms, **context):
        report = _apply_action(
            action, report_id, actor,
            asset_id=asset_id, comments=comments, expected_version=expected_version,
        )
    return report


# ── Public API: reports ──────────────────────────────────────────────────────


def create_report(actor, job_id, title, report_type, payload, template_slug=None,
                  timeout_ms=None) -> TechnicalReport:
    """Create a draft report plus its report-type asset, linked to the job.

    The asset's file_url is ``report:<job-id>/<template-slug>/<report-id>``;
    the slug defaults to ``report_type``, with ``/`` and ``?`` turned into ``-``.
    """
    with workflow_transaction(timeout_ms, action="create", job_id=job_id, actor_id=_actor_id(actor)):
        check_permission(actor, _ACTION_PERMISSION["create"])
        report = report_store.create_draft_report(job_id, title, report_type, payload, actor.user_id)
        slug = normalize_template_slug(template_slug or report.report_type)
        if not slug:
            raise ValidationError(
                "template_slug must contain more than separators", details={"template_slug": "invalid"},
            )
        asset = asset_registry.create_asset(
            name=report.title,
            file_url=build_report_ref(report.job_id, slug, report.id),
            initial_status="in_progress",
            template_type=slug,
        )
        asset_registry.link_asset_to_job(report.job_id, asset.id)
        write_audit(
            entity_type="report",
            entity_id=report.id,
            action="report.create",
            actor=actor.user_id,
            actor_role=_role(actor),
            job_id=report.job_id,
            diff={"status": {"old": None, "new": "draft"}, "asset_id": asset.id},
        )
    logger.info(
        "Report created",
        extra={"report_id": report.id, "asset_id": asset.id, "job_id": job_id, "actor_id": actor.user_id},
    )
    return report


def edit_draft_report(report_id, actor, title=None, payload=None, timeout_ms=None) -> TechnicalReport:
    """Edit a draft's title or payload. Standard users may only edit their own drafts."""
    with workflow_transaction(timeout_ms, action="edit", report_id=report_id, actor_id=_actor_id(actor)):
        check_permission(actor, _ACTION_PERMISSION["edit"])
        report = report_store.get_report(report_id)
        _check_ownership(report, actor, _ACTION_PERMISSION["edit"])
        old_title = report.title
        report = report_store.update_draft_report(report_id, title=title, payload=payload)
        write_audit(
            entity_type="report",
            entity_id=report.id,
            action="report.update_draft",
            actor=actor.user_id,
            actor_role=_role(actor),
            job_id=report.job_id,
            diff={
                "title": {"old": old_title, "new": report.title},
                "payload_changed": payload is not None,
            },
        )
    return report


def submit_report(report_id, actor, asset_id=None, comments=None,
                  expected_version=None, timeout_ms=None) -> TechnicalReport:
    """draft → submitted; links the report to its asset, asset → ready_for_review."""
    return _transition("submit", report_id, actor, asset_id, comments, expected_version, timeout_ms)


def resubmit_report(report_id, actor, asset_id=None, comments=None,
                    expected_version=None, timeout_ms=None) -> TechnicalReport:
    """rejected → submitted; clears the previous review, asset → ready_for_review."""
    return _transition("resubmit", report_id, actor, asset_id, comments, expected_version, timeout_ms)


def approve_report(report_id, actor, asset_id=None, comments=None,
                   expected_version=None, timeout_ms=None) -> TechnicalReport:
    """submitted → approved; asset → approved."""
    return _transition("approve", report_id, actor, asset_id, comments, expected_version, timeout_ms)


def reject_report(report_id, actor, asset_id=None, comments=None,
                  expected_version=None, timeout_ms=None) -> TechnicalReport:
    """submitted → rejected (comments required); asset → issue."""
    return _transition("reject", report_id, actor, asset_id, comments, expected_version, timeout_ms)


def archive_report(report_id, actor, asset_id=None, comments=None,
                   expected_version=None, timeout_ms=None) -> TechnicalReport:
    """submitted/approved/rejected → archived. The asset is left alone."""
    return _transition("archive", report_id, actor, asset_id, comments, expected_version, timeout_ms)


def review_report(report_id, actor, decision, comments=None,
                  expected_version=None, timeout_ms=None) -> TechnicalReport:
    """Apply a reviewer decision: ``approved`` or ``rejected``."""
    action = _DECISIONS.get((decision or "").strip().lower())
    if action is None:
        raise ValidationError(
            "decision must be 'approved' or 'rejected'",
            details={"decision": decision},
        ).add_context(action="review", report_id=report_id, actor_id=_actor_id(actor))
    return _transition(action, report_id, actor, None, comments, expected_version, timeout_ms)


def transition_report(report_id, action, actor, asset_id=None, comments=None,
                      expected_version=None, timeout_ms=None) -> TechnicalReport:
    """Generic entry point: apply any REPORT_ACTIONS action by name."""
    return _transition(action, report_id, actor, asset_id, comments, expected_version, timeout_ms)


def get_available_actions(report: TechnicalReport, actor: ActorContext | None) -> list[str]:
    """Actions the actor could apply to the report right now."""
    actions = []
    if actor is None:
        return actions
    for action, rule in REPORT_ACTIONS.items():
        if report.status not in rule["from"]:
            continue
        if not has_permission(actor, _ACTION_PERMISSION[action]):
            continue
        if action in ("submit", "resubmit") and not (
            has_permission(actor, "report_submit_any") or report.created_by == actor.user_id
        ):
            continue
        actions.append(action)
    return actions


# ── Public API: asset side ───────────────────────────────────────────────────


def _revert(asset: Asset, actor: ActorContext, confirm: bool, job_id=None) -> dict:
    check_permission(actor, "asset_revert")
    if asset.status != "ready_for_review":
        raise InvalidTransitionError(
            asset.status, "in_progress", action="revert",
            reason="only assets awaiting review can be reverted",
        )
    if not confirm:
        raise ValidationError(
            "Reverting deletes the submitted report; pass confirm=true to proceed",
            details={"confirm": "required"},
        )

    report = _find_report_for_asset(asset)
    deleted_report_id = None
    if report is None:
        logger.warning(
            "No report found for reverted asset",
            extra={"asset_id": asset.id, "actor_id": actor.user_id, "action": "revert"},
        )
    else:
        deleted_report_id = report.id
        report_job_id = report.job_id
        report_store.delete_report(report.id)
        write_audit(
            entity_type="report",
            entity_id=deleted_report_id,
            action="report.delete",
            actor=actor.user_id,
            actor_role=_role(actor),
            job_id=report_job_id,
            diff={"reason": "asset reverted to in_progress", "asset_id": asset.id},
        )

    asset_registry.update_asset_status(asset.id, "in_progress")
    write_audit(
        entity_type="asset",
        entity_id=asset.id,
        action="asset.revert",
        actor=actor.user_id,
        actor_role=_role(actor),
        job_id=job_id,
        diff={
            "status": {"old": "ready_for_review", "new": "in_progress"},
            "deleted_report_id": deleted_report_id,
        },
    )
    return {"asset": asset, "deleted_report_id": deleted_report_id}


def revert_asset_to_in_progress(asset_id, actor, confirm=False, job_id=None, timeout_ms=None) -> dict:
    """ready_for_review → in_progress on a report asset.

    Deletes the backing report and its Report ↔ Asset link. A missing report
    is logged and does not stop the revert.

    Returns:
        {"asset": Asset, "deleted_report_id": str | None}
    """
    with workflow_transaction(
        timeout_ms, action="revert", asset_id=asset_id, job_id=job_id,
        actor_id=_actor_id(actor), to_status="in_progress",
    ):
        asset = asset_registry.get_asset(asset_id)
        result = _revert(asset, actor, confirm, job_id=job_id)
    return result


def _submit_asset(asset: Asset, actor: ActorContext, job_id=None) -> TechnicalReport:
    check_permission(actor, "report_submit")
    if not asset.is_report:
        raise ValidationError(
            "Only report assets can be submitted for review", details={"asset_id": asset.id},
        )

    report = _find_report_for_asset(asset)
    if report is None:
        ref = asset.report_ref
        owner_job = job_id or (ref.job_id if ref else None)
        if not owner_job:
            jobs = asset_registry.list_jobs_for_asset(asset.id)
            owner_job = jobs[0] if jobs else None
        if not owner_job:
            raise ValidationError("job_id is required", details={"job_id": "required"})
        slug = asset.template_type or (ref.template_slug if ref else None) or "report"
        payload = {"asset_id": asset.id, "file_url": asset.file_url, "asset_name": asset.name}
        report = report_store.create_draft_report(
            owner_job, asset.name, asset.template_type or DEFAULT_REPORT_TYPE, payload, actor.user_id,
        )
        asset.file_url = build_report_ref(owner_job, slug, report.id)
        db.session.flush()
        write_audit(
            entity_type="report",
            entity_id=report.id,
            action="report.create",
            actor=actor.user_id,
            actor_role=_role(actor),
            job_id=owner_job,
            diff={"status": {"old": None, "new": "draft"}, "asset_id": asset.id},
        )

    if report.status == "draft":
        action = "submit"
    elif report.status == "rejected":
        action = "resubmit"
    else:
        raise InvalidTransitionError(report.status, "submitted", action="submit")
    return _apply_action(action, report.id, actor, asset_id=asset.id)


def submit_asset_for_review(asset_id, actor, job_id=None, timeout_ms=None) -> TechnicalReport:
    """Move a report asset to ready_for_review by submitting its report.

    A draft is created from the asset when no report backs it yet; a
    rejected report is resubmitted.
    """
    with workflow_transaction(
        timeout_ms, action="submit", asset_id=asset_id, job_id=job_id,
        actor_id=_actor_id(actor), to_status="submitted",
    ):
        asset = asset_registry.get_asset(asset_id)
        report = _submit_asset(asset, actor, job_id=job_id)
    return report


def change_asset_status(asset_id, new_status, actor, job_id=None, confirm=False,
                        timeout_ms=None) -> Asset:
    """Asset-side status change.

    Report assets:
        ready_for_review → in_progress   revert (confirm required)
        * → ready_for_review             submit / resubmit the backing report
        issue → in_progress              rework, report stays rejected
        * → approved | issue             only through review (InvalidTransitionError)
    Upload assets: any valid status, set directly.
    """
    with workflow_transaction(
        timeout_ms, action="asset_status", asset_id=asset_id, job_id=job_id,
        actor_id=_actor_id(actor), to_status=new_status,
    ):
        check_permission(actor, "asset_manage")
        if new_status not in ASSET_STATUSES:
            raise ValidationError(
                f"Invalid asset status '{new_status}'. "
                f"Must be one of: {', '.join(sorted(ASSET_STATUSES))}",
                details={"status": new_status},
            )
        asset = asset_registry.get_asset(asset_id)
        old_status = asset.status

        if old_status == new_status:
            return asset

        if asset.is_report:
            if new_status in ("approved", "issue"):
                raise InvalidTransitionError(
                    old_status, new_status,
                    reason="report assets are approved or rejected through review",
                )
            if new_status == "ready_for_review":
                _submit_asset(asset, actor, job_id=job_id)
                return asset
            if old_status == "ready_for_review":
                _revert(asset, actor, confirm, job_id=job_id)
                return asset
            if old_status == "approved":
                raise InvalidTransitionError(
                    old_status, new_status, reason="approved report assets are final",
                )

        asset_registry.update_asset_status(asset.id, new_status)
        write_audit(
            entity_type="asset",
            entity_id=asset.id,
            action="asset.status",
            actor=actor.user_id,
            actor_role=_role(actor),
            job_id=job_id,
            diff={"status": {"old": old_status, "new": new_status}},
        )
    return asset
