"""
Asset Registry — assets and their Job ↔ Asset links.

Stores asset status but owns no report business rules; the lifecycle engine
decides *when* a report asset's status changes. Every function here only
flushes: the caller owns the transaction.

Deleting the last Job ↔ Asset link deletes the asset itself. The upload URL
is handed back so the caller can remove the bytes from file storage.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select

from neta_ops.core.exceptions import NotFoundError, ValidationError
from neta_ops.models import db
from neta_ops.models.asset import (
    ASSET_STATUSES,
    Asset,
    JobAsset,
    build_report_ref,
    is_report_ref,
    parse_report_ref,
)
from neta_ops.models.report import AssetReport

logger = logging.getLogger(__name__)

__all__ = [
    "build_report_ref",
    "create_asset",
    "get_asset",
    "link_asset_to_job",
    "list_assets_for_job",
    "list_jobs_for_asset",
    "parse_report_ref",
    "unlink_asset_from_job",
    "update_asset_status",
]


def _validate_status(status: str) -> None:
    if status not in ASSET_STATUSES:
        raise ValidationError(
            f"Invalid asset status '{status}'. "
            f"Must be one of: {', '.join(sorted(ASSET_STATUSES))}",
            details={"status": status},
        )


def create_asset(
    name: str,
    file_url: str,
    initial_status: str = "in_progress",
    template_type: str | None = None,
) -> Asset:
    """Create an asset record.

    Raises:
        ValidationError: empty name or file_url, or unknown status.
    """
    name = (name or "").strip()
    file_url = (file_url or "").strip()
    if not name:
        raise ValidationError("Asset name is required", details={"name": "required"})
    if not file_url:
        raise ValidationError("Asset file_url is required", details={"file_url": "required"})
    _validate_status(initial_status)

    asset = Asset(
        name=name,
        file_url=file_url,
        template_type=template_type,
        status=initial_status,
    )
    db.session.add(asset)
    db.session.flush()
    logger.info(
        "Asset created",
        extra={"asset_id": asset.id, "kind": "report" if is_report_ref(file_url) else "upload"},
    )
    return asset


def get_asset(asset_id: str) -> Asset:
    asset = db.session.get(Asset, asset_id) if asset_id else None
    if asset is None:
        raise NotFoundError("Asset", asset_id)
    return asset


def link_asset_to_job(job_id: str, asset_id: str) -> JobAsset:
    """Link an asset to a job. Linking an existing pair is a no-op."""
    if not job_id or not str(job_id).strip():
        raise ValidationError("job_id is required", details={"job_id": "required"})
    get_asset(asset_id)

    link = db.session.get(JobAsset, (job_id, asset_id))
    if link is not None:
        return link

    link = JobAsset(job_id=job_id, asset_id=asset_id)
    db.session.add(link)
    db.session.flush()
    logger.info("Asset linked to job", extra={"asset_id": asset_id, "job_id": job_id})
    return link


def unlink_asset_from_job(job_id: str, asset_id: str) -> dict:
    """Remove a Job ↔ Asset link; delete the asset when no job references it any more.

    The Report row backing a report asset is kept; only its Report ↔ Asset
    link disappears with the asset.

    Returns:
        {"asset_deleted": bool, "delete_file": str | None}
        ``delete_file`` is the upload URL the caller must remove from storage.

    Raises:
        NotFoundError: the link does not exist.
    """
    link = db.session.get(JobAsset, (job_id, asset_id))
    if link is None:
        raise NotFoundError("JobAsset", f"{job_id}/{asset_id}")

    db.session.delete(link)
    db.session.flush()

    remaining = db.session.execute(
        select(func.count()).select_from(JobAsset).where(JobAsset.asset_id == asset_id)
    ).scalar()
    if remaining:
        logger.info(
            "Asset unlinked from job",
            extra={"asset_id": asset_id, "job_id": job_id, "remaining_links": remaining},
        )
        return {"asset_deleted": False, "delete_file": None}

    asset = db.session.get(Asset, asset_id)
    delete_file = None
    if asset is not None:
        if not asset.is_report:
            delete_file = asset.file_url
        db.session.execute(delete(AssetReport).where(AssetReport.asset_id == asset_id))
        db.session.delete(asset)
        db.session.flush()

    logger.info(
        "Asset deleted after last job link removed",
        extra={"asset_id": asset_id, "job_id": job_id},
    )
    return {"asset_deleted": True, "delete_file": delete_file}


def list_assets_for_job(job_id: str) -> list[Asset]:
    stmt = (
        select(Asset)
        .join(JobAsset, JobAsset.asset_id == Asset.id)
        .where(JobAsset.job_id == job_id)
    )
    return list(db.session.execute(stmt).scalars().all())


def list_jobs_for_asset(asset_id: str) -> list[str]:
    stmt = select(JobAsset.job_id).where(JobAsset.asset_id == asset_id).order_by(JobAsset.job_id)
    return list(db.session.execute(stmt).scalars().all())


def update_asset_status(asset_id: str, new_status: str) -> Asset:
    """Set an asset's status. No transition rules are applied here."""
    _validate_status(new_status)
    asset = get_asset(asset_id)
    old_status = asset.status
    asset.status = new_status
    db.session.flush()
    logger.info(
        "Asset status updated",
        extra={"asset_id": asset_id, "from_status": old_status, "to_status": new_status},
    )
    return asset
