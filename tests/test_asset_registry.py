"""
Tests: Asset Registry — assets, Job ↔ Asset links and report references.

Registry functions only flush; tests commit where a later read goes through
a fresh query.
"""

import pytest

from neta_ops.core.exceptions import NotFoundError, ValidationError
from neta_ops.models import db
from neta_ops.models.asset import Asset, JobAsset, ReportRef
from neta_ops.models.report import AssetReport
from neta_ops.services import asset_registry, report_store
from neta_ops.services.asset_registry import build_report_ref, parse_report_ref


def _upload(name="Site photo", url="https://files.example.com/job-1/photo.jpg", **kwargs):
    return asset_registry.create_asset(name, url, **kwargs)


# ── create / get ─────────────────────────────────────────────────────────────


class TestCreateAsset:
    def test_defaults_to_in_progress(self):
        asset = _upload()
        assert asset.id
        assert asset.status == "in_progress"
        assert asset.is_report is False
        assert asset.to_dict()["kind"] == "upload"

    def test_report_reference_asset(self):
        asset = asset_registry.create_asset(
            "Panelboard Report", "report:job-1/panelboard-report/r-1", template_type="panelboard-report",
        )
        assert asset.is_report
        assert asset.report_ref == ReportRef("job-1", "panelboard-report", "r-1")

    @pytest.mark.parametrize("name,url", [("", "https://x"), ("  ", "https://x"), ("Doc", ""), (None, "https://x")])
    def test_rejects_empty_name_or_url(self, name, url):
        with pytest.raises(ValidationError):
            asset_registry.create_asset(name, url)

    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            _upload(initial_status="done")

    def test_get_unknown_asset(self):
        with pytest.raises(NotFoundError):
            asset_registry.get_asset("missing")


# ── links ────────────────────────────────────────────────────────────────────


class TestJobLinks:
    def test_link_is_idempotent(self):
        asset = _upload()
        asset_registry.link_asset_to_job("job-1", asset.id)
        asset_registry.link_asset_to_job("job-1", asset.id)
        db.session.commit()
        assert db.session.query(JobAsset).filter_by(asset_id=asset.id).count() == 1

    def test_link_unknown_asset(self):
        with pytest.raises(NotFoundError):
            asset_registry.link_asset_to_job("job-1", "missing")

    def test_link_requires_job_id(self):
        asset = _upload()
        with pytest.raises(ValidationError):
            asset_registry.link_asset_to_job("", asset.id)

    def test_list_assets_and_jobs(self):
        a = _upload("A")
        b = _upload("B")
        asset_registry.link_asset_to_job("job-1", a.id)
        asset_registry.link_asset_to_job("job-1", b.id)
        asset_registry.link_asset_to_job("job-2", a.id)
        db.session.commit()

        assert {x.id for x in asset_registry.list_assets_for_job("job-1")} == {a.id, b.id}
        assert [x.id for x in asset_registry.list_assets_for_job("job-2")] == [a.id]
        assert asset_registry.list_jobs_for_asset(a.id) == ["job-1", "job-2"]

    def test_unlink_missing_link(self):
        asset = _upload()
        with pytest.raises(NotFoundError):
            asset_registry.unlink_asset_from_job("job-1", asset.id)

    def test_unlink_keeps_asset_with_other_jobs(self):
        asset = _upload()
        asset_registry.link_asset_to_job("job-1", asset.id)
        asset_registry.link_asset_to_job("job-2", asset.id)

        result = asset_registry.unlink_asset_from_job("job-1", asset.id)
        db.session.commit()

        assert result == {"asset_deleted": False, "delete_file": None}
        assert db.session.get(Asset, asset.id) is not None
        assert asset_registry.list_jobs_for_asset(asset.id) == ["job-2"]

    def test_unlink_last_link_deletes_upload_and_returns_file(self):
        asset = _upload(url="https://files.example.com/a.pdf")
        asset_id = asset.id
        asset_registry.link_asset_to_job("job-1", asset_id)

        result = asset_registry.unlink_asset_from_job("job-1", asset_id)
        db.session.commit()

        assert result == {"asset_deleted": True, "delete_file": "https://files.example.com/a.pdf"}
        assert db.session.get(Asset, asset_id) is None

    def test_unlink_last_link_of_report_asset_keeps_report(self):
        report = report_store.create_draft_report("job-1", "Panelboard", "panelboard", {}, "tech-1")
        asset = asset_registry.create_asset("Panelboard", build_report_ref("job-1", "panelboard", report.id))
        asset_registry.link_asset_to_job("job-1", asset.id)
        report_store.link_report_to_asset(report.id, asset.id)
        db.session.commit()

        result = asset_registry.unlink_asset_from_job("job-1", asset.id)
        db.session.commit()

        assert result == {"asset_deleted": True, "delete_file": None}
        assert db.session.query(AssetReport).count() == 0
        assert report_store.get_report(report.id).status == "draft"


# ── status ───────────────────────────────────────────────────────────────────


class TestStatus:
    def test_update_status_is_unconditional(self):
        asset = _upload()
        asset_registry.update_asset_status(asset.id, "approved")
        asset_registry.update_asset_status(asset.id, "in_progress")
        assert asset.status == "in_progress"

    def test_update_status_validates_value(self):
        asset = _upload()
        with pytest.raises(ValidationError):
            asset_registry.update_asset_status(asset.id, "archived")


# ── report references ────────────────────────────────────────────────────────


class TestReportRefs:
    def test_build_and_parse(self):
        ref = build_report_ref("job-9", "panelboard-report", "abc")
        assert ref == "report:job-9/panelboard-report/abc"
        assert parse_report_ref(ref) == ReportRef("job-9", "panelboard-report", "abc")

    def test_parse_legacy_form_with_query(self):
        ref = parse_report_ref("report:/jobs/job-9/panelboard-report/abc?returnToAssets=true")
        assert ref == ReportRef("job-9", "panelboard-report", "abc")

    def test_parse_without_report_id(self):
        assert parse_report_ref("report:job-9/panelboard-report") == ReportRef("job-9", "panelboard-report")

    @pytest.mark.parametrize("value", [None, "", "https://x/report.pdf", "report:", "report:job-9"])
    def test_parse_rejects_non_references(self, value):
        assert parse_report_ref(value) is None
