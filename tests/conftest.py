"""
Pytest configuration and fixtures for eSign Backend tests.
"""

import os
import shutil
import tempfile

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
_TEST_ROOT = tempfile.mkdtemp(prefix="esign_test_")
os.environ["ESIGN_DB_PATH"] = os.path.join(_TEST_ROOT, "documents.db")
os.environ["ESIGN_STORAGE_ROOT"] = os.path.join(_TEST_ROOT, "blobs")
os.environ["DOCUMENSO_API_KEY"] = "test-documenso-key"

from esign_backend.blob_store import LocalBlobStore
from esign_backend.database import DocumentDatabase
from esign_backend.document_manager import DocumentManager
from esign_backend.errors import BackendError, NotReady
from esign_backend.main import app, get_document_manager
from esign_backend.signing_backend import RemoteStatus


def make_pdf(pages=((612, 792), (612, 792)), text=None) -> bytes:
    """Build a small PDF with the given page sizes (points)."""
    doc = fitz.open()
    for width, height in pages:
        page = doc.new_page(width=width, height=height)
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class FakeSigningBackend:
    """In-memory signing backend with switchable failures."""

    def __init__(self):
        self.remote_status = RemoteStatus.PENDING
        self.artifact = make_pdf(pages=((612, 792),), text="signed")
        self.created = []
        self.distributed = []
        self.fetch_calls = 0
        self.fail_create = False
        self.fail_distribute = False
        self.fail_status = False
        self.artifact_failures = 0
        self._counter = 0

    def create_remote_document(self, title, pdf_bytes, file_name, signers):
        if self.fail_create:
            raise BackendError("Failed to create document in Documenso: HTTP 500", transient=True)
        self._counter += 1
        external_id = f"remote-{self._counter}"
        self.created.append(
            {"id": external_id, "title": title, "file_name": file_name, "signers": list(signers), "pdf": pdf_bytes}
        )
        return external_id

    def distribute(self, external_id):
        if self.fail_distribute:
            raise BackendError("Failed to send document for signature: HTTP 503", transient=True)
        self.distributed.append(external_id)

    def get_remote_status(self, external_id):
        if self.fail_status:
            raise BackendError("Failed to get document status: request timed out", transient=True)
        return self.remote_status

    def fetch_completed_artifact(self, external_id):
        self.fetch_calls += 1
        if self.remote_status != RemoteStatus.COMPLETED:
            raise NotReady(f"Document is not completed. Current status: {self.remote_status.value}")
        if self.artifact_failures:
            self.artifact_failures -= 1
            raise BackendError("Failed to download signed document: HTTP 502", transient=True)
        return self.artifact


class RecordingListener:
    def __init__(self):
        self.changes = []

    def status_changed(self, document_id, previous, current):
        self.changes.append((document_id, previous, current))


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the shared test directory after the session."""
    yield _TEST_ROOT
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def sample_pdf():
    """Two US-letter pages (612x792 pts)."""
    return make_pdf()


@pytest.fixture
def signing_backend():
    return FakeSigningBackend()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def database(tmp_path):
    return DocumentDatabase(tmp_path / "documents.db")


@pytest.fixture
def manager(database, blob_store, signing_backend, listener):
    return DocumentManager(database, blob_store, signing_backend, status_listener=listener)


@pytest.fixture
def signature_field():
    return {"id": "sig1", "x": 100, "y": 100, "width": 200, "height": 50, "page": 1, "kind": "signature"}


@pytest.fixture
def uploaded(manager, sample_pdf):
    """A freshly uploaded draft document."""
    return manager.upload_document(sample_pdf, "contract.pdf", "application/pdf")


@pytest.fixture
def pending(manager, uploaded, signature_field):
    """A document with one signature field, ready for submission."""
    return manager.add_signature_fields(uploaded.id, [signature_field])


@pytest.fixture
def submitted(manager, pending):
    return manager.submit_for_signature(pending.id, "a@b.com")


@pytest.fixture
def client(manager):
    """Create a test client with the manager wired to in-memory collaborators."""
    app.dependency_overrides[get_document_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()
