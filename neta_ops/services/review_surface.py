"""
Approval Review Surface — read-only queries over reports and assets.

Consumed by the review UI, the notification collaborator and the print
queue. Nothing here writes to the store.

Filtering is driven by an explicit ``ReviewFilters`` object built per
request; there is no ambient filter state. Job scoping always goes through
the job's *current* Job ↔ Asset and Report ↔ Asset links, so a report whose
asset was unlinked from the job drops out of that job's lists.

Folder grouping (job asset view and review list):
    * "Imported" — name or file_url mentions "import" (case-insensitive)
    * "<n>"      — name starts with a number, e.g. "3-Low Voltage Cable Test"
    * "Other"    — everything else
Folders are ordered Imported, numeric ascending, Other. Items inside a folder
are ordered by their numeric name prefix, then by name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import or_, select

from neta_ops.core.exceptions import ValidationError
from neta_ops.models import db
from neta_ops.models.asset import Asset, JobAsset
from neta_ops.models.report import REPORT_STATUSES, AssetReport, TechnicalReport
from neta_ops.utils.helpers import parse_date

IMPORTED_FOLDER = "Imported"
OTHER_FOLDER = "Other"

_FOLDER_PREFIX = re.compile(r"^(\d+)\s*[-–]?\s*")
_NUMERIC_PREFIX = re.compile(r"^(\d+)")
_IMPORT = re.compile(r"import", re.IGNORECASE)

# Asset tab → statuses shown
ASSET_STATUS_TABS = {
    "all": None,
    "in_progress": {"in_progress", "ready_for_review"},
    "ready_for_review": {"ready_for_review"},
    "approved": {"approved"},
    "issue": {"issue"},
}


# ═════════════════════════════════════════════════════════════════════════════
# Filters
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class ReviewFilters:
    """Filters for the review list. All fields optional; dates are inclusive."""

    job_id: str | None = None
    status: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    report_type: str | None = None
    submitted_by: str | None = None
    search: str | None = None

    @classmethod
    def from_args(cls, args) -> "ReviewFilters":
        """Build filters from query-string arguments (``request.args``)."""

        def _text(key):
            value = (args.get(key) or "").strip()
            return value or None

        status = _text("status")
        if status == "all":
            status = None
        if status is not None and status not in REPORT_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'. Must be one of: {', '.join(REPORT_STATUSES)}",
                details={"status": status},
            )

        dates = {}
        for key in ("start_date", "end_date"):
            raw = _text(key)
            parsed = parse_date(raw)
            if raw and parsed is None:
                raise ValidationError(
                    f"Invalid {key}. Use YYYY-MM-DD or DD.MM.YYYY.", details={key: raw},
                )
            dates[key] = parsed
        if dates["start_date"] and dates["end_date"] and dates["start_date"] > dates["end_date"]:
            raise ValidationError("start_date must not be after end_date")

        return cls(
            job_id=_text("job_id"),
            status=status,
            start_date=dates["start_date"],
            end_date=dates["end_date"],
            report_type=_text("report_type"),
            submitted_by=_text("submitted_by"),
            search=_text("search"),
        )


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _job_report_ids(job_id: str):
    """Subquery of report ids reachable from a job through its current links."""
    return (
        select(AssetReport.report_id)
        .join(JobAsset, JobAsset.asset_id == AssetReport.asset_id)
        .where(JobAsset.job_id == job_id)
    )


def _filtered(filters: ReviewFilters):
    stmt = select(TechnicalReport)
    if filters.job_id:
        stmt = stmt.where(TechnicalReport.id.in_(_job_report_ids(filters.job_id)))
    if filters.status:
        stmt = stmt.where(TechnicalReport.status == filters.status)
    if filters.report_type:
        stmt = stmt.where(TechnicalReport.report_type == filters.report_type)
    if filters.submitted_by:
        stmt = stmt.where(TechnicalReport.submitted_by == filters.submitted_by)
    if filters.start_date:
        stmt = stmt.where(TechnicalReport.submitted_at >= _day_start(filters.start_date))
    if filters.end_date:
        stmt = stmt.where(
            TechnicalReport.submitted_at < _day_start(filters.end_date + timedelta(days=1))
        )
    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(or_(
            TechnicalReport.title.ilike(pattern),
            TechnicalReport.report_type.ilike(pattern),
        ))
    return stmt


# ═════════════════════════════════════════════════════════════════════════════
# Report queries
# ═════════════════════════════════════════════════════════════════════════════


def list_reports_for_review(filters: ReviewFilters | None = None) -> list[TechnicalReport]:
    """Reports matching ``filters``, newest submissions first."""
    stmt = _filtered(filters or ReviewFilters()).order_by(
        TechnicalReport.submitted_at.desc().nulls_last(),
        TechnicalReport.created_at.desc(),
    )
    return list(db.session.execute(stmt).scalars().all())


def list_pending_reports(job_id: str | None = None) -> list[TechnicalReport]:
    """Submitted reports awaiting a decision, oldest submission first."""
    stmt = _filtered(ReviewFilters(job_id=job_id, status="submitted")).order_by(
        TechnicalReport.submitted_at.asc(),
        TechnicalReport.created_at.asc(),
    )
    return list(db.session.execute(stmt).scalars().all())


def compute_metrics(reports) -> dict:
    """Count reports per status. Pure: works on any iterable of reports."""
    metrics = {"total": 0}
    metrics.update({status: 0 for status in REPORT_STATUSES})
    for report in reports:
        metrics["total"] += 1
        if report.status in metrics:
            metrics[report.status] += 1
    return metrics


def get_approval_metrics(filters: ReviewFilters | None = None) -> dict:
    """Status counts over the reports matching ``filters`` (status filter ignored)."""
    scoped = replace(filters or ReviewFilters(), status=None)
    return compute_metrics(list_reports_for_review(scoped))


def assets_by_report_id(reports) -> dict[str, Asset]:
    """Map report id → linked asset for the given reports (one query)."""
    ids = [r.id for r in reports]
    if not ids:
        return {}
    rows = db.session.execute(
        select(AssetReport.report_id, Asset)
        .join(Asset, Asset.id == AssetReport.asset_id)
        .where(AssetReport.report_id.in_(ids))
    ).all()
    return {report_id: asset for report_id, asset in rows}


def list_printable_reports(job_id: str) -> list[dict]:
    """Approved reports of a job with their asset file reference, in folder order."""
    reports = list_reports_for_review(ReviewFilters(job_id=job_id, status="approved"))
    linked = assets_by_report_id(reports)
    printable = []
    for group in group_reports_by_folder(reports, linked):
        for report in group["items"]:
            asset = linked.get(report.id)
            printable.append({
                "folder": group["folder"],
                "report": report.to_dict(include_payload=True, include_history=False),
                "asset_id": asset.id if asset else None,
                "file_url": asset.file_url if asset else None,
            })
    return printable


# ═════════════════════════════════════════════════════════════════════════════
# Folder grouping
# ═════════════════════════════════════════════════════════════════════════════


def folder_key(name: str | None, file_url: str | None = None) -> str:
    name = name or ""
    if _IMPORT.search(name) or _IMPORT.search(file_url or ""):
        return IMPORTED_FOLDER
    match = _FOLDER_PREFIX.match(name)
    if match:
        return match.group(1)
    return OTHER_FOLDER


def _folder_order(key: str):
    if key == IMPORTED_FOLDER:
        return (0, 0, key)
    if key == OTHER_FOLDER:
        return (2, 0, key)
    return (1, int(key), key)


def _item_order(name: str | None):
    name = name or ""
    match = _NUMERIC_PREFIX.match(name)
    return (int(match.group(1)) if match else 0, name)


def _group(items, name_of, url_of) -> list[dict]:
    groups: dict[str, list] = {}
    for item in items:
        groups.setdefault(folder_key(name_of(item), url_of(item)), []).append(item)
    return [
        {"folder": key, "items": sorted(groups[key], key=lambda i: _item_order(name_of(i)))}
        for key in sorted(groups, key=_folder_order)
    ]


def group_assets_by_folder(assets) -> list[dict]:
    """Group assets into ordered folders: ``[{"folder": str, "items": [Asset]}]``."""
    return _group(assets, lambda a: a.name, lambda a: a.file_url)


def group_reports_by_folder(reports, assets_by_report_id: dict) -> list[dict]:
    """Group reports by their linked asset's folder. Reports without an asset go to Other."""

    def _name(report):
        asset = assets_by_report_id.get(report.id)
        return asset.name if asset else None

    def _url(report):
        asset = assets_by_report_id.get(report.id)
        return asset.file_url if asset else None

    return _group(reports, _name, _url)


# ═════════════════════════════════════════════════════════════════════════════
# Job asset tabs
# ═════════════════════════════════════════════════════════════════════════════


def filter_job_assets(assets, status_tab: str = "all", search: str | None = None) -> list:
    """Apply the job asset tab and name search. The in_progress tab includes ready_for_review."""
    tab = status_tab or "all"
    if tab not in ASSET_STATUS_TABS:
        raise ValidationError(
            f"Invalid status tab '{tab}'. Must be one of: {', '.join(ASSET_STATUS_TABS)}",
            details={"status": tab},
        )
    statuses = ASSET_STATUS_TABS[tab]
    needle = (search or "").strip().lower()

    result = []
    for asset in assets:
        if statuses is not None and (asset.status or "in_progress") not in statuses:
            continue
        if needle and needle not in (asset.name or "").lower():
            continue
        result.append(asset)
    return result
