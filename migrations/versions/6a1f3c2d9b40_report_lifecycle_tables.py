"""report_lifecycle_tables

Creates the report lifecycle tables:
  - assets            — uploaded files and generated report assets
  - job_assets        — Job ↔ Asset links (composite PK)
  - technical_reports — reports with status and current_version
  - report_revisions  — append-only revision history, unique (report_id, version)
  - asset_reports     — Report ↔ Asset links, one report per asset
  - audit_logs        — lifecycle audit trail
  - notifications     — reportStatusChanged outbox

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 6a1f3c2d9b40
Revises:
Create Date: 2026-10-17 09:12:41.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '6a1f3c2d9b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Assets ────────────────────────────────────────────────────────────
    if "assets" not in existing:
        op.create_table(
            "assets",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("file_url", sa.Text(), nullable=False,
                      comment="Upload URL, or report:<job-id>/<template-slug>/<report-id>"),
            sa.Column("template_type", sa.String(length=120), nullable=True,
                      comment="Report template slug"),
            sa.Column("status", sa.String(length=30), nullable=False,
                      server_default="in_progress"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "job_assets" not in existing:
        op.create_table(
            "job_assets",
            sa.Column("job_id", sa.String(length=64), nullable=False, comment="External job id"),
            sa.Column("asset_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("job_id", "asset_id"),
        )
        op.create_index("idx_job_assets_asset", "job_assets", ["asset_id"])

    # ── Technical reports ────────────────────────────────────────────────
    if "technical_reports" not in existing:
        op.create_table(
            "technical_reports",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("job_id", sa.String(length=64), nullable=False, comment="External job id"),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("report_type", sa.String(length=120), nullable=False,
                      comment="Report template identifier"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("current_version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("report_data", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            sa.Column("submitted_by", sa.String(length=64), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_by", sa.String(length=64), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("review_comments", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_reports_job_status", "technical_reports", ["job_id", "status"])
        op.create_index("idx_reports_status_submitted", "technical_reports", ["status", "submitted_at"])
        op.create_index("idx_reports_type", "technical_reports", ["report_type"])

    if "report_revisions" not in existing:
        op.create_table(
            "report_revisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["technical_reports.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("report_id", "version", name="uq_report_revision_version"),
        )
        op.create_index("ix_report_revisions_report_id", "report_revisions", ["report_id"])

    if "asset_reports" not in existing:
        op.create_table(
            "asset_reports",
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("asset_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["technical_reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("report_id", "asset_id"),
            sa.UniqueConstraint("asset_id", name="uq_asset_reports_asset"),
        )

    # ── Audit & notifications ────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_id", sa.String(length=64), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False,
                      comment="report | asset"),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False,
                      comment="report.approve | asset.revert | …"),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("actor_role", sa.String(length=30), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True,
                      comment="JSON: {field: {old, new}}"),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_job", "audit_logs", ["job_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_id", sa.String(length=64), nullable=True),
            sa.Column("recipient", sa.String(length=150), nullable=True,
                      comment="User id, 'reviewers' or 'all'"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("event_type", sa.String(length=60), nullable=False,
                      server_default="reportStatusChanged"),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.String(length=36), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_job_id", "notifications", ["job_id"])
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])


def downgrade():
    for table in (
        "notifications",
        "audit_logs",
        "asset_reports",
        "report_revisions",
        "technical_reports",
        "job_assets",
        "assets",
    ):
        op.drop_table(table)
