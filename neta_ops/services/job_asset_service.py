"""
Job asset service — owner-facing asset management for a job.

Wraps the asset registry in transactions and writes the audit trail for
uploads, links and detaches. Report assets are created by the lifecycle
engine (``report_lifecycle.create_report``), not here.
"""

import logging

from neta_ops.core.exceptions import ValidationError
from neta_ops.models.audit import write_audit
from neta_ops.services import asset_registry, report_store
from neta_ops.services.permission import check_permission
from neta_ops.utils.helpers import workflow_transaction

logger = logging.getLogger(__name__)


def _actor_fields(actor):
    return {"actor": actor.user_id, "actor_role": getattr(actor.role, "value", actor.role)}


def add_upload_asset(actor, job_id, name, file_url, status="in_progress", template_type=None):
    """Register an uploaded file as an asset of ``job_id``."""
    with workflow_transaction(action="asset_create", job_id=job_id, actor_id=getattr(actor, "user_id", None)):
        check_permission(actor, "asset_manage")
        if (file_url or "").startswith("report:"):
            raise ValidationError(
                "Report assets are created with their report", details={"file_url": "invalid"},
            )
        asset = asset_registry.create_asset(name, file_url, status or "in_progress", template_type)
        asset_registry.link_asset_to_job(job_id, asset.id)
        write_audit(
            entity_type="asset",
            entity_id=asset.id,
            action="asset.create",
            job_id=job_id,
            diff={"name": asset.name, "status": asset.status},
            **_actor_fields(actor),
        )
    return asset


def link_existing_asset(actor, job_id, asset_id):
    """Make an existing asset reachable from another job."""
    with workflow_transaction(action="asset_link", job_id=job_id, asset_id=asset_id,
                              actor_id=getattr(actor, "user_id", None)):
        check_permission(actor, "asset_manage")
        link = asset_registry.link_asset_to_job(job_id, asset_id)
        write_audit(
            entity_type="asset",
            entity_id=asset_id,
            action="asset.link",
            job_id=job_id,
            **_actor_fields(actor),
        )
    return link


def detach_asset(actor, job_id, asset_id):
    """Remove an asset from a job; the asset is deleted with its last link.

    Returns the registry result: {"asset_deleted", "delete_file"}. A non-null
    ``delete_file`` is the upload URL the caller must purge from storage.
    """
    with workflow_transaction(action="asset_unlink", job_id=job_id, asset_id=asset_id,
                              actor_id=getattr(actor, "user_id", None)):
        check_permission(actor, "asset_manage")
        result = asset_registry.unlink_asset_from_job(job_id, asset_id)
        write_audit(
            entity_type="asset",
            entity_id=asset_id,
            action="asset.unlink",
            job_id=job_id,
            diff=result,
            **_actor_fields(actor),
        )
    return result


def describe_asset(asset):
    """Asset dict with its jobs and backing report id."""
    data = asset.to_dict()
    report = report_store.get_report_by_asset_id(asset.id)
    data["report_id"] = report.id if report else None
    data["report_status"] = report.status if report else None
    data["job_ids"] = asset_registry.list_jobs_for_asset(asset.id)
    return data
