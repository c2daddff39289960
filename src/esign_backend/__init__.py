"""
eSign Backend - REST API for PDF signing workflows

This package provides a FastAPI-based web service that carries a PDF through
an external signing workflow (Documenso). It enables:

- PDF uploads and validation
- Placement of signature, text and checkbox fields onto PDF pages
- Submission to the signing backend and distribution to signers
- Polling-based status reconciliation and signed artifact retrieval
- Best-effort cleanup of stored files on deletion

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - document_manager: Document state machine and backend reconciliation
    - geometry: UI to PDF page coordinate mapping
    - annotator: Form widget embedding (PyMuPDF)
    - signing_backend: Signing service protocol and Documenso adapter
    - database: SQLite record store
    - blob_store: Local filesystem and S3 blob storage
    - configuration: OmegaConf settings loading

Usage:
    Run the API server with:
        uvicorn esign_backend.main:app --reload --host 0.0.0.0 --port 8080
"""
