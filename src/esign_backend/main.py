from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from omegaconf import DictConfig

from .blob_store import BlobStore, LocalBlobStore, S3BlobStore
from .configuration import configure_logging, get_settings
from .database import DocumentDatabase
from .document_manager import DocumentManager, StoredFile
from .errors import DocumentError
from .models import (
    DocumentDetail,
    DocumentSummary,
    PdfInfo,
    SignatureFieldsRequest,
    SubmitRequest,
)
from .signing_backend import DocumensoBackend

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.logging.level)

app = FastAPI(title="eSign API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def build_blob_store(config: DictConfig) -> BlobStore:
    if config.storage.backend == "s3":
        return S3BlobStore(
            bucket=config.storage.s3_bucket,
            prefix=config.storage.s3_prefix,
            endpoint_url=config.storage.s3_endpoint_url or None,
        )
    return LocalBlobStore(Path(config.storage.root))


def build_document_manager(config: DictConfig) -> DocumentManager:
    return DocumentManager(
        database=DocumentDatabase(Path(config.database.path)),
        blob_store=build_blob_store(config),
        signing_backend=DocumensoBackend(
            api_key=config.signing.api_key,
            base_url=config.signing.base_url,
            timeout=float(config.signing.timeout_seconds),
        ),
        signature_placeholder=config.annotation.signature_placeholder,
        default_signer_name=config.signing.default_signer_name,
    )


@lru_cache(maxsize=1)
def get_document_manager() -> DocumentManager:
    return build_document_manager(settings)


@app.exception_handler(DocumentError)
async def handle_document_error(request: Request, exc: DocumentError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def _pdf_response(stored: StoredFile, disposition: str) -> Response:
    return Response(
        content=stored.data,
        media_type=stored.media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{stored.filename}"'},
    )


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/documents/upload", response_model=DocumentDetail)
async def upload_document(
    file: UploadFile | None = File(None),
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentDetail:
    data = None
    filename = content_type = None
    if file is not None:
        data = await file.read()
        filename, content_type = file.filename, file.content_type
        await file.close()
    return manager.upload_document(data, filename, content_type)


@app.get("/documents", response_model=list[DocumentSummary])
def list_documents(manager: DocumentManager = Depends(get_document_manager)) -> list[DocumentSummary]:
    return manager.list_documents()


@app.get("/documents/{document_id}", response_model=DocumentDetail)
def get_document(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> DocumentDetail:
    return manager.get_document(document_id)


@app.get("/documents/{document_id}/info", response_model=PdfInfo)
def get_pdf_info(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> PdfInfo:
    return manager.get_pdf_info(document_id)


@app.get("/documents/{document_id}/download")
def download_document(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> Response:
    return _pdf_response(manager.get_document_file(document_id), "attachment")


@app.get("/documents/{document_id}/view")
def view_document(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> Response:
    return _pdf_response(manager.get_document_file(document_id), "inline")


@app.get("/documents/{document_id}/annotated")
def download_annotated(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> Response:
    return _pdf_response(manager.get_annotated_file(document_id), "attachment")


@app.put("/documents/{document_id}/signature-fields", response_model=DocumentDetail)
def add_signature_fields(
    document_id: str,
    payload: SignatureFieldsRequest,
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentDetail:
    return manager.add_signature_fields(document_id, payload.fields)


@app.post("/documents/{document_id}/submit", response_model=DocumentDetail)
def submit_for_signature(
    document_id: str,
    payload: SubmitRequest,
    manager: DocumentManager = Depends(get_document_manager),
) -> DocumentDetail:
    return manager.submit_for_signature(document_id, payload.signer_email, payload.signer_name)


@app.get("/documents/{document_id}/status", response_model=DocumentDetail)
def check_document_status(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> DocumentDetail:
    return manager.check_status(document_id)


@app.get("/documents/{document_id}/signed")
def download_signed(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> Response:
    return _pdf_response(manager.get_signed_file(document_id), "attachment")


@app.delete("/documents/{document_id}")
def delete_document(document_id: str, manager: DocumentManager = Depends(get_document_manager)) -> Dict[str, str]:
    manager.delete_document(document_id)
    return {"message": "Document deleted successfully"}
