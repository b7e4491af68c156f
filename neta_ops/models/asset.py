"""
NETA Ops — Asset domain model.

Models:
    - Asset: one uploaded document or generated report attached to jobs.
    - JobAsset: pure many-to-many link between an external job and an asset.

An asset's ``file_url`` is either an opaque URL returned by the upload
service, or a report reference identifying a generated report:

    report:<job-id>/<template-slug>/<report-id>

The legacy form ``report:/jobs/<job-id>/<template-slug>/<report-id>`` (with an
optional ``?query`` tail) written by older clients is accepted when parsing.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from neta_ops.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ASSET_STATUSES = frozenset({"in_progress", "ready_for_review", "approved", "issue"})

REPORT_REF_PREFIX = "report:"

# Path and query separators are not allowed inside a reference segment
_UNSAFE_SLUG_CHARS = re.compile(r"[/?]+")


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Report references ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReportRef:
    """Parsed ``report:`` file reference."""

    job_id: str
    template_slug: str
    report_id: str | None = None


def is_report_ref(file_url: str | None) -> bool:
    return bool(file_url) and file_url.startswith(REPORT_REF_PREFIX)


def normalize_template_slug(value: str | None) -> str:
    """Make a template id usable as one reference segment: "switchgear/ats" → "switchgear-ats"."""
    return _UNSAFE_SLUG_CHARS.sub("-", (value or "").strip()).strip("-")


def report_ref_tail(file_url: str | None) -> str | None:
    """Last path segment of a report reference, ignoring any query tail."""
    if not is_report_ref(file_url):
        return None
    body = file_url[len(REPORT_REF_PREFIX):].split("?", 1)[0].rstrip("/")
    return body.rsplit("/", 1)[-1] or None


def build_report_ref(job_id: str, template_slug: str, report_id: str | None = None) -> str:
    ref = f"{REPORT_REF_PREFIX}{job_id}/{normalize_template_slug(template_slug)}"
    if report_id:
        ref += f"/{report_id}"
    return ref


def parse_report_ref(file_url: str | None) -> ReportRef | None:
    """Parse a report reference; returns None for upload URLs or malformed refs."""
    if not is_report_ref(file_url):
        return None
    body = file_url[len(REPORT_REF_PREFIX):].split("?", 1)[0]
    segments = [s for s in body.split("/") if s]
    if segments and segments[0] == "jobs":
        segments = segments[1:]
    if len(segments) < 2:
        return None
    return ReportRef(
        job_id=segments[0],
        template_slug=segments[1],
        report_id=segments[2] if len(segments) > 2 else None,
    )


# ── Models ───────────────────────────────────────────────────────────────────

class Asset(db.Model):
    """
    A document or generated report reachable from one or more jobs.

    Status is stored here but only changed through the lifecycle engine
    (report assets) or by owner edits (upload assets).
    """

    __tablename__ = "assets"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(
        db.Text, nullable=False,
        comment="Upload URL, or report:<job-id>/<template-slug>/<report-id>",
    )
    template_type = db.Column(db.String(120), nullable=True, comment="Report template slug")
    status = db.Column(db.String(30), nullable=False, default="in_progress")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_report(self) -> bool:
        return is_report_ref(self.file_url)

    @property
    def report_ref(self) -> ReportRef | None:
        return parse_report_ref(self.file_url)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "file_url": self.file_url,
            "template_type": self.template_type,
            "status": self.status,
            "kind": "report" if self.is_report else "upload",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Asset {self.id}: {self.name[:40]} [{self.status}]>"


class JobAsset(db.Model):
    """Job ↔ Asset association. The (job_id, asset_id) pair is the whole record."""

    __tablename__ = "job_assets"
    __table_args__ = (
        db.Index("idx_job_assets_asset", "asset_id"),
    )

    job_id = db.Column(db.String(64), primary_key=True, comment="External job id")
    asset_id = db.Column(
        db.String(36),
        db.ForeignKey("assets.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "job_id": self.job_id,
            "asset_id": self.asset_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<JobAsset job={self.job_id} asset={self.asset_id}>"
