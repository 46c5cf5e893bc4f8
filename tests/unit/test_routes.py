"""
API tests for the import, job, media and pricing routes.

Routes only enqueue work, so these tests check the queued payloads
and the HTTP contract; the jobs themselves are covered in
test_job_handlers.py.

Run: pytest tests/unit/test_routes.py -v
"""

from unittest.mock import patch

from config import settings
from models.jobs import QUEUE_IMPORT, QUEUE_MEDIA, JOB_IMPORT_CSV, JOB_IMPORT_URL, JOB_SYNC_MEDIA

from tests.factories import ProductFactory


class TestImportRoutes:
    """Tests for /api/imports"""

    def test_csv_upload_is_queued(self, test_client_with_mock_db, job_queue, tmp_path):
        # Arrange
        upload_dir = tmp_path / "uploads"

        # Act
        with patch.object(settings, "upload_dir", upload_dir):
            response = test_client_with_mock_db.post(
                "/api/imports/csv",
                files={"file": ("products.csv", b"sku,price\nA,10\n", "text/csv")}
            )

        # Assert
        assert response.status_code == 202
        body = response.json()
        job = job_queue.get(body["job_id"])
        assert body["status"] == "waiting"
        assert job.queue == QUEUE_IMPORT
        assert job.name == JOB_IMPORT_CSV
        assert job.data["batchId"] == body["batch_id"]
        stored = upload_dir / f"{body['batch_id']}.csv"
        assert job.data["csvPath"] == str(stored)
        assert stored.read_bytes() == b"sku,price\nA,10\n"

    def test_csv_upload_rejects_other_formats(self, test_client_with_mock_db, job_queue):
        response = test_client_with_mock_db.post(
            "/api/imports/csv",
            files={"file": ("catalog.pdf", b"%PDF", "application/pdf")}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_SOURCE_INVALID"
        assert job_queue.jobs() == []

    def test_url_import_is_queued(self, test_client_with_mock_db, job_queue):
        response = test_client_with_mock_db.post("/api/imports/url", json={
            "sourceUrl": "https://shop.test/item/1",
            "sku": "URL-1",
            "price": 75,
        })

        assert response.status_code == 202
        job = job_queue.get(response.json()["job_id"])
        assert job.name == JOB_IMPORT_URL
        assert job.data["sourceUrl"] == "https://shop.test/item/1"
        assert job.data["sku"] == "URL-1"
        assert "imageUrl" not in job.data

    def test_url_import_requires_source_url(self, test_client_with_mock_db):
        response = test_client_with_mock_db.post("/api/imports/url", json={"sku": "X"})

        assert response.status_code == 422


class TestJobRoutes:
    """Tests for /api/jobs"""

    def test_get_job(self, test_client_with_mock_db, job_queue):
        job = job_queue.enqueue(QUEUE_MEDIA, JOB_SYNC_MEDIA, {"sku": "A"})

        response = test_client_with_mock_db.get(f"/api/jobs/{job.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == job.id
        assert body["status"] == "waiting"
        assert body["attempts"] == 0

    def test_unknown_job_404(self, test_client_with_mock_db):
        response = test_client_with_mock_db.get("/api/jobs/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "JOB_NOT_FOUND"


class TestMediaRoutes:
    """Tests for /api/media"""

    def test_sync_is_queued_with_preferred_url(self, test_client_with_mock_db, job_queue):
        response = test_client_with_mock_db.post(
            "/api/media/SKU1/sync",
            json={"prefer_url": "SKU1/front.jpg"}
        )

        assert response.status_code == 202
        job = job_queue.get(response.json()["job_id"])
        assert job.data == {"sku": "SKU1", "preferUrl": "SKU1/front.jpg"}

    def test_sync_without_body(self, test_client_with_mock_db, job_queue):
        response = test_client_with_mock_db.post("/api/media/SKU1/sync")

        assert response.status_code == 202
        assert job_queue.jobs()[0].data == {"sku": "SKU1", "preferUrl": None}


class TestPricingRoutes:
    """Tests for /api/pricing"""

    def test_quote(self, test_client_with_mock_db):
        response = test_client_with_mock_db.post("/api/pricing/quote", json={
            "material_g": 50,
            "print_time_min": 120,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["price_final"] == 130
        assert body["method"] == "cost_plus"

    def test_reprice(self, test_client_with_mock_db, mock_supabase):
        mock_supabase.set_table_data("products", [
            ProductFactory.create_cost_plus(id=1, sku="A", price=1),
        ])

        response = test_client_with_mock_db.post("/api/pricing/reprice")

        assert response.status_code == 200
        assert response.json() == {"scanned": 1, "repriced": 1, "skipped": 0}
        assert mock_supabase.rows("products")[0]["price"] == 130


class TestHealth:
    """Tests for /health"""

    def test_health_reports_queue_depth(self, test_client_with_mock_db):
        response = test_client_with_mock_db.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "pending_jobs" in body
