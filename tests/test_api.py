"""
Tests for eSign Backend API endpoints.

Tests cover:
- Health check
- Upload validation
- Document listing and detail
- Signature field placement
- Submission and status polling
- File downloads (original, annotated, signed)
- Deletion
- CORS
"""

from io import BytesIO

import pytest

from esign_backend.signing_backend import RemoteStatus

SIGNATURE_FIELD = {"id": "sig1", "x": 100, "y": 100, "width": 200, "height": 50, "page": 1, "type": "signature"}


@pytest.fixture
def document_id(client, sample_pdf):
    response = client.post("/documents/upload", files={"file": ("contract.pdf", BytesIO(sample_pdf), "application/pdf")})
    assert response.status_code == 200
    return response.json()["id"]


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestUpload:
    def test_upload_pdf(self, client, sample_pdf):
        response = client.post(
            "/documents/upload",
            files={"file": ("contract.pdf", BytesIO(sample_pdf), "application/pdf")},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "draft"
        assert data["original_name"] == "contract.pdf"
        assert data["file_size"] == len(sample_pdf)
        assert data["signed_available"] is False

    def test_upload_non_pdf(self, client):
        """Uploading a non-PDF file should fail."""
        response = client.post(
            "/documents/upload",
            files={"file": ("test.txt", BytesIO(b"not a pdf"), "text/plain")},
        )
        assert response.status_code == 415
        assert "PDF" in response.json()["detail"]

    def test_upload_without_file(self, client):
        response = client.post("/documents/upload")
        assert response.status_code == 400
        assert response.json()["detail"] == "No file uploaded"


class TestDocuments:
    def test_list_documents(self, client, document_id):
        response = client.get("/documents")
        assert response.status_code == 200
        assert [doc["id"] for doc in response.json()] == [document_id]

    def test_get_nonexistent_document(self, client):
        """Getting a nonexistent document should return 404."""
        response = client.get("/documents/nonexistent-id")
        assert response.status_code == 404

    def test_pdf_info(self, client, document_id):
        response = client.get(f"/documents/{document_id}/info")
        assert response.status_code == 200
        assert response.json() == {
            "page_count": 2,
            "sizes": [{"width": 612.0, "height": 792.0}, {"width": 612.0, "height": 792.0}],
        }

    def test_download_and_view(self, client, document_id, sample_pdf):
        download = client.get(f"/documents/{document_id}/download")
        assert download.status_code == 200
        assert download.content == sample_pdf
        assert download.headers["content-type"] == "application/pdf"
        assert download.headers["content-disposition"] == 'attachment; filename="contract.pdf"'

        view = client.get(f"/documents/{document_id}/view")
        assert view.headers["content-disposition"].startswith("inline")


class TestSignatureFields:
    def test_add_fields(self, client, document_id):
        response = client.put(f"/documents/{document_id}/signature-fields", json={"fields": [SIGNATURE_FIELD]})
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "pending_signature"
        assert data["fields"][0]["kind"] == "signature"
        assert data["annotated_available"] is True

        annotated = client.get(f"/documents/{document_id}/annotated")
        assert annotated.status_code == 200
        assert 'filename="annotated_contract.pdf"' in annotated.headers["content-disposition"]

    def test_fields_required(self, client, document_id):
        response = client.put(f"/documents/{document_id}/signature-fields", json={})
        assert response.status_code == 422

    def test_empty_fields(self, client, document_id):
        response = client.put(f"/documents/{document_id}/signature-fields", json={"fields": []})
        assert response.status_code == 400

    def test_malformed_field(self, client, document_id):
        response = client.put(
            f"/documents/{document_id}/signature-fields",
            json={"fields": [{"id": "x", "x": 1, "y": 1, "page": 1, "kind": "text"}]},
        )
        assert response.status_code == 422

    def test_page_out_of_range(self, client, document_id):
        response = client.put(
            f"/documents/{document_id}/signature-fields",
            json={"fields": [{**SIGNATURE_FIELD, "page": 3}]},
        )
        assert response.status_code == 422
        assert "page 3" in response.json()["detail"]


class TestSigningFlow:
    def test_submit_requires_email(self, client, document_id):
        client.put(f"/documents/{document_id}/signature-fields", json={"fields": [SIGNATURE_FIELD]})
        response = client.post(f"/documents/{document_id}/submit", json={"signerEmail": ""})
        assert response.status_code == 422

    def test_submit_from_draft(self, client, document_id):
        response = client.post(f"/documents/{document_id}/submit", json={"signerEmail": "a@b.com"})
        assert response.status_code == 409

    def test_status_before_submit(self, client, document_id):
        response = client.get(f"/documents/{document_id}/status")
        assert response.status_code == 409

    def test_signed_before_completion(self, client, document_id):
        response = client.get(f"/documents/{document_id}/signed")
        assert response.status_code == 409

    def test_backend_failure(self, client, document_id, signing_backend):
        client.put(f"/documents/{document_id}/signature-fields", json={"fields": [SIGNATURE_FIELD]})
        signing_backend.fail_create = True
        response = client.post(f"/documents/{document_id}/submit", json={"signerEmail": "a@b.com"})
        assert response.status_code == 502

    def test_full_flow(self, client, document_id, signing_backend):
        client.put(f"/documents/{document_id}/signature-fields", json={"fields": [SIGNATURE_FIELD]})

        response = client.post(
            f"/documents/{document_id}/submit",
            json={"signerEmail": "a@b.com", "signerName": "Ada"},
        )
        assert response.status_code == 200
        assert response.json()["external_id"] == "remote-1"
        assert response.json()["status"] == "pending_signature"

        signing_backend.remote_status = RemoteStatus.COMPLETED
        response = client.get(f"/documents/{document_id}/status")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["signed_available"] is True

        signed = client.get(f"/documents/{document_id}/signed")
        assert signed.status_code == 200
        assert signed.content == signing_backend.artifact
        assert signed.headers["content-disposition"] == 'attachment; filename="signed_contract.pdf"'


class TestDelete:
    def test_delete_document(self, client, document_id):
        response = client.delete(f"/documents/{document_id}")
        assert response.status_code == 200
        assert response.json() == {"message": "Document deleted successfully"}

        assert client.get(f"/documents/{document_id}").status_code == 404
        assert client.delete(f"/documents/{document_id}").status_code == 404


class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_preflight_allowed_origin(self, client):
        response = client.options(
            "/healthz",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
