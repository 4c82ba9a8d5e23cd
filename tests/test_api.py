"""
End-to-end tests for the HTTP interface.
"""

from datetime import date
from types import SimpleNamespace
from urllib.parse import unquote

import pytest
from fastapi.testclient import TestClient

from conftest import add_snapshot, seed_ledger
from branch_reporting.main import create_app
from branch_reporting.models import JobKind
from branch_reporting.jobs import submit_job

UPLOAD = (
    "CIF,Short Name,Account Number,Balance,PN Relationship Officer\n"
    "123456,PT Maju Jaya,0001,\"1,000,000\",90001 - Jane Doe\n"
    "123456,PT Maju Jaya,0001,\"1,100,000\",90001 - Jane Doe\n"
    "999999,Unknown,0009,10,\n"
)


@pytest.fixture
def api(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        yield SimpleNamespace(client=client, app=app, ids=seed_ledger(app.state.database))


def upload(client, content=UPLOAD, filename="balances.csv", report_date="2024-03-01"):
    return client.post(
        "/api/imports",
        files={"file": (filename, content.encode("utf-8"), "text/csv")},
        data={"report_date": report_date},
    )


class TestImportFlow:
    """Upload -> preview -> commit."""

    def test_upload_validate_and_commit(self, api):
        client = api.client

        response = upload(client)
        assert response.status_code == 202
        job_id = response.json()["job_id"]

        status = client.get(f"/api/imports/{job_id}/status").json()
        assert status["status"] == "completed"
        data = status["data"]
        assert data["report_date"] == "2024-03-01"
        assert data["summary"]["total_rows_in_source"] == 3
        assert len(data["valid_rows"]) == 1
        assert data["valid_rows"][0]["row_number"] == 3
        assert data["valid_rows"][0]["previous_balance"] == "0"
        assert data["valid_rows"][0]["current_balance"] == "1100000"
        reasons = sorted(row["reason"] for row in data["rejected_rows"])
        assert reasons == ["duplicate", "unknown_cif"]

        response = client.post(
            "/api/imports/commit",
            json={"valid_rows": data["valid_rows"], "report_date": data["report_date"]},
        )
        assert response.status_code == 202
        commit_id = response.json()["job_id"]

        status = client.get(f"/api/imports/commit/{commit_id}/status").json()
        assert status["status"] == "completed"
        assert status["processed_count"] == 1

        ledger = api.app.state.ledger
        snapshots = ledger.snapshots_on([api.ids.jane_id], date(2024, 3, 1))
        assert snapshots == {api.ids.jane_id: 1100000}

    def test_unreadable_upload_fails(self, api):
        response = upload(api.client, content="foo,bar\n1,2\n")
        status = api.client.get(f"/api/imports/{response.json()['job_id']}/status").json()

        assert status["status"] == "failed"
        assert "No recognizable columns" in status["message"]
        assert "data" not in status

    def test_commit_rejects_negative_amounts(self, api):
        row = {
            "cif": "123456",
            "account_number": "0001",
            "account_id": api.ids.account_0001,
            "subject_id": api.ids.jane_id,
            "current_balance": "-1",
        }
        response = api.client.post("/api/imports/commit", json={"valid_rows": [row], "report_date": "2024-03-01"})
        assert response.status_code == 422

    def test_report_date_is_required(self, api):
        response = api.client.post(
            "/api/imports",
            files={"file": ("balances.csv", UPLOAD.encode("utf-8"), "text/csv")},
        )
        assert response.status_code == 422


class TestJobStatus:

    @pytest.mark.parametrize("path", [
        "/api/imports/{id}/status",
        "/api/imports/commit/{id}/status",
        "/api/exports/{id}/status",
    ])
    def test_unknown_job(self, api, path):
        response = api.client.get(path.format(id="does-not-exist"))

        assert response.status_code == 404
        assert response.json() == {"status": "failed", "message": "Job not found or expired"}

    def test_status_is_scoped_to_kind(self, api):
        job_id = upload(api.client).json()["job_id"]

        assert api.client.get(f"/api/imports/commit/{job_id}/status").status_code == 404
        assert api.client.get(f"/api/exports/{job_id}/status").status_code == 404

    def test_health(self, api):
        assert api.client.get("/health").json()["status"] == "healthy"


class TestExportFlow:

    def test_export_and_download(self, api, settings):
        client = api.client
        database = api.app.state.database
        add_snapshot(database, api.ids.jane_id, date(2024, 1, 1), "5000000")
        add_snapshot(database, api.ids.jane_id, date(2024, 3, 31), "6000000")

        response = client.post("/api/exports", json={
            "subject_ids": [api.ids.jane_id, api.ids.john_id],
            "start_date": "2024-03-01",
            "end_date": "2024-03-31",
            "baseline_year": 2024,
        })
        assert response.status_code == 202
        job_id = response.json()["job_id"]

        status = client.get(f"/api/exports/{job_id}/status").json()
        assert status["status"] == "completed"
        assert status["file_name"].startswith("Balance Performance Report - ")
        assert status["file_name"].endswith(".xlsx")
        assert status["skipped_subject_ids"] == []

        download = client.get(f"/api/exports/{job_id}/download")
        assert download.status_code == 200
        assert download.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        disposition = unquote(download.headers["content-disposition"])
        assert status["file_name"] in disposition
        assert download.content[:2] == b"PK"

        # Evicted once downloaded
        assert client.get(f"/api/exports/{job_id}/status").status_code == 404

    def test_empty_selection_completes(self, api):
        response = api.client.post("/api/exports", json={
            "subject_ids": [],
            "start_date": "2024-03-31",
            "end_date": "2024-03-01",
            "baseline_year": 2024,
        })
        status = api.client.get(f"/api/exports/{response.json()['job_id']}/status").json()
        assert status["status"] == "completed"

    @pytest.mark.parametrize("year", [1999, 2101])
    def test_baseline_year_bounds(self, api, year):
        response = api.client.post("/api/exports", json={
            "subject_ids": [1],
            "start_date": "2024-03-01",
            "end_date": "2024-03-02",
            "baseline_year": year,
        })
        assert response.status_code == 422

    def test_download_requires_completed_job(self, api):
        store = api.app.state.store
        job = submit_job(store, JobKind.EXPORT, 3600)

        assert api.client.get(f"/api/exports/{job.id}/download").status_code == 404

    def test_download_outside_reports_dir_is_forbidden(self, api, tmp_path):
        outside = tmp_path / "elsewhere.xlsx"
        outside.write_bytes(b"PK")
        store = api.app.state.store
        job = submit_job(store, JobKind.EXPORT, 3600)
        store.complete(job.id, {"file_path": str(outside), "file_name": "x.xlsx"})

        assert api.client.get(f"/api/exports/{job.id}/download").status_code == 403
