"""
Tests for FastAPI backend endpoints.
"""

import pytest
from pathlib import Path
from fastapi.testclient import TestClient

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.main import create_app
from config import app_config
from pipeline import BatchOrchestrator, InMemoryOutcomeStore

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client(settings, fake_provider, temp_dir, monkeypatch):
    """Create test client against a mocked provider."""
    monkeypatch.setattr(app_config, "uploads_dir", temp_dir / "uploads")
    monkeypatch.setattr(app_config, "output_dir", temp_dir / "output")

    app = create_app(settings=settings, transport=fake_provider.transport(), store=InMemoryOutcomeStore())
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def pan_xlsx(make_xlsx, pan_rows) -> Path:
    return make_xlsx(pan_rows, name="pan list.xlsx")


def upload(client, path: Path, identifier_type: str = "pan"):
    with open(path, "rb") as f:
        return client.post(
            "/upload",
            files={"file": (path.name, f, XLSX_MIME)},
            data={"identifier_type": identifier_type},
        )


class TestAPIEndpoints:
    """Tests for API endpoints."""

    def test_root_endpoint(self, client):
        """Test health check endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    def test_health_endpoint(self, client):
        """Test detailed health check."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["mode"] == "strict"

    def test_upload_no_file(self, client):
        """Test upload without a file."""
        response = client.post("/upload")
        assert response.status_code == 422

    def test_upload_invalid_file_type(self, client, temp_dir):
        """Test upload with a non-Excel file."""
        txt_file = temp_dir / "test.txt"
        txt_file.write_text("This is not a spreadsheet")

        with open(txt_file, "rb") as f:
            response = client.post("/upload", files={"file": ("test.txt", f, "text/plain")})

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]

    def test_upload_unknown_identifier_type(self, client, pan_xlsx):
        response = upload(client, pan_xlsx, identifier_type="passport")
        assert response.status_code == 400

    def test_upload_missing_columns(self, client, make_xlsx):
        """Missing required columns are listed in the error."""
        path = make_xlsx([{"PAN": "ABCDE1234F", "Name": "Ravi Kumar"}])
        response = upload(client, path)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["missing"] == ["dateOfBirth"]
        assert detail["found"] == ["PAN", "Name"]

    def test_upload_success(self, client, pan_xlsx):
        response = upload(client, pan_xlsx)

        assert response.status_code == 200
        data = response.json()
        assert data["batch_id"] == "pan_list_1"
        assert data["total_rows"] == 3
        assert data["status"] == "uploaded"

    def test_second_upload_gets_new_id(self, client, pan_xlsx):
        upload(client, pan_xlsx)
        assert upload(client, pan_xlsx).json()["batch_id"] == "pan_list_2"

    def test_status_invalid_batch(self, client):
        response = client.get("/status/nope")
        assert response.status_code == 404


class TestBatchLifecycle:
    """Upload, process, inspect, export and delete a batch."""

    def test_process_and_status(self, client, pan_xlsx, fake_provider):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]

        response = client.post(f"/process/{batch_id}")
        assert response.status_code == 200

        status = client.get(f"/status/{batch_id}").json()
        assert status["status"] == "completed"
        assert status["processed"] == 2
        assert status["summary"]["accepted_records"] == 2
        assert status["summary"]["skipped_rows"] == 1
        assert len(fake_provider.verify_calls) == 2

    def test_not_processed_twice(self, client, pan_xlsx, fake_provider):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        response = client.post(f"/process/{batch_id}")
        assert response.status_code == 409
        assert len(fake_provider.verify_calls) == 2

    def test_records_are_masked(self, client, pan_xlsx):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        records = client.get(f"/records/{batch_id}").json()
        assert [r["row_number"] for r in records] == [1, 3]
        assert records[0]["identifier"] == "XXXXXX234F"
        assert records[0]["status"] == "verified"

    def test_auth_failure_marks_batch_failed(self, client, pan_xlsx, fake_provider):
        fake_provider.auth_status = 403
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        status = client.get(f"/status/{batch_id}").json()
        assert status["status"] == "failed"
        assert "Authentication failed" in status["error"]
        assert client.get(f"/records/{batch_id}").json() == []

    def test_cancel_before_processing(self, client, pan_xlsx, fake_provider):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]

        response = client.post(f"/cancel/{batch_id}")
        assert response.json()["status"] == "cancelled"
        assert client.post(f"/process/{batch_id}").status_code == 409
        assert fake_provider.verify_calls == []

    def test_export_excel(self, client, pan_xlsx):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        response = client.post(f"/export/{batch_id}")
        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MIME

    def test_export_before_processing(self, client, pan_xlsx):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        assert client.post(f"/export/{batch_id}").status_code == 400

    def test_delete_session(self, client, pan_xlsx):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        response = client.delete(f"/session/{batch_id}")
        assert response.json() == {"status": "deleted", "batch_id": batch_id, "records_removed": 2}
        assert client.get(f"/status/{batch_id}").status_code == 404

    def test_delete_while_processing_refused(self, client, pan_xlsx):
        """A running batch cannot be deleted; its workers would write records back."""
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.app.state.batches[batch_id]["status"] = "processing"

        response = client.delete(f"/session/{batch_id}")
        assert response.status_code == 409
        assert client.get(f"/status/{batch_id}").status_code == 200

    def test_deleted_id_not_reused(self, client, pan_xlsx):
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.delete(f"/session/{batch_id}")

        assert upload(client, pan_xlsx).json()["batch_id"] == "pan_list_2"

    def test_unexpected_error_marks_batch_failed(self, client, pan_xlsx, monkeypatch):
        """A batch never stays 'processing' after its run raised."""
        async def explode(self, *args, **kwargs):
            raise RuntimeError("worker exploded")

        monkeypatch.setattr(BatchOrchestrator, "run_batch", explode)
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        status = client.get(f"/status/{batch_id}").json()
        assert status["status"] == "failed"
        assert "worker exploded" in status["error"]

    def test_numeric_dob_row_skipped(self, client, make_xlsx):
        """A DOB typed as digits skips that row instead of failing the batch."""
        path = make_xlsx([
            {"PAN": "ABCDE1234F", "Name": "Ravi Kumar", "DOB": "1990-03-01"},
            {"PAN": "PQRSX6789K", "Name": "Meena Shah", "DOB": 19900301},
        ])
        batch_id = upload(client, path).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        status = client.get(f"/status/{batch_id}").json()
        assert status["status"] == "completed"
        assert status["summary"]["skipped_rows"] == 1


class TestBatchListing:
    """Tests for /batches and /stats."""

    def test_batches_lists_counts(self, client, pan_xlsx):
        processed = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{processed}")
        pending = upload(client, pan_xlsx).json()["batch_id"]

        batches = {b["batch_id"]: b for b in client.get("/batches").json()}

        assert batches[processed]["status"] == "completed"
        assert batches[processed]["total_records"] == 2
        assert batches[processed]["status_counts"]["verified"] == 2
        assert batches[pending]["status"] == "uploaded"
        assert batches[pending]["total_records"] == 0

    def test_stats_empty(self, client):
        stats = client.get("/stats").json()
        assert stats["total"] == 0
        assert stats["success_rate"] == 0.0

    def test_stats_success_rate(self, client, pan_xlsx, fake_provider):
        fake_provider.scripts["PQRSX6789K"] = [(422, {"message": "Invalid PAN"})]
        batch_id = upload(client, pan_xlsx).json()["batch_id"]
        client.post(f"/process/{batch_id}")

        stats = client.get("/stats", params={"timeframe": "week"}).json()
        assert stats["total"] == 2
        assert stats["verified"] == 1
        assert stats["invalid"] == 1
        assert stats["success_rate"] == 50.0
        assert stats["timeframe"] == "week"

    def test_stats_unknown_timeframe(self, client):
        assert client.get("/stats", params={"timeframe": "decade"}).status_code == 400


class TestVerifySingle:
    """Tests for /verify-single."""

    def test_verify_pan(self, client, fake_provider):
        response = client.post("/verify-single", json={
            "identifier": "abcde1234f", "name": "Ravi Kumar", "date_of_birth": "1990-03-01",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["batch_id"] == "single_1"
        assert data["status"] == "verified"
        assert data["identifier"] == "XXXXXX234F"
        assert fake_provider.verify_calls[0]["body"]["pan"] == "ABCDE1234F"
        assert fake_provider.verify_calls[0]["body"]["date_of_birth"] == "01/03/1990"

    def test_verify_aadhaar(self, client, fake_provider):
        response = client.post("/verify-single", json={
            "identifier_type": "aadhaar", "identifier": "1234 5678 9012", "name": "Sita Devi", "gender": "F",
        })

        assert response.status_code == 200
        assert fake_provider.verify_calls[0]["path"] == "/kyc/aadhaar/verify"
        assert fake_provider.verify_calls[0]["body"]["gender"] == "F"

    def test_ids_increment_and_show_in_stats(self, client):
        payload = {"identifier": "ABCDE1234F", "name": "Ravi Kumar", "date_of_birth": "1990-03-01"}
        client.post("/verify-single", json=payload)

        assert client.post("/verify-single", json=payload).json()["batch_id"] == "single_2"
        assert client.get("/stats").json()["verified"] == 2
        assert {b["batch_id"] for b in client.get("/batches").json()} == {"single_1", "single_2"}

    def test_invalid_pan_rejected(self, client, fake_provider):
        response = client.post("/verify-single", json={
            "identifier": "ABC123", "name": "Ravi Kumar", "date_of_birth": "1990-03-01",
        })

        assert response.status_code == 400
        assert "Invalid PAN format" in response.json()["detail"]
        assert fake_provider.verify_calls == []

    def test_pan_requires_dob(self, client):
        response = client.post("/verify-single", json={"identifier": "ABCDE1234F", "name": "Ravi Kumar"})
        assert response.status_code == 400

    def test_auth_failure(self, client, fake_provider):
        fake_provider.auth_status = 403
        response = client.post("/verify-single", json={
            "identifier": "ABCDE1234F", "name": "Ravi Kumar", "date_of_birth": "1990-03-01",
        })
        assert response.status_code == 502
