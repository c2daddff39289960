"""
Document lifecycle orchestration.

This module owns the document state machine:

    draft -> pending_signature -> signed -> completed

- Upload creates a draft record and stores the original PDF
- Adding fields annotates a copy of the original and moves to pending_signature
- Submission registers the PDF with the signing backend and distributes it
- Status checks pull the remote status, fold it into the local record and
  fetch the signed artifact once the remote workflow is completed
- Deletion removes blobs best-effort, then the record

Thread Safety:
    One manager-wide lock guards the read-check-write sections on records.
    Blob and backend I/O run outside the lock. Submissions in flight are
    tracked per document id so two concurrent submissions can never both
    assign an external id, and field edits are rejected while one is running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union
from uuid import uuid4

import pydantic

from .annotator import DEFAULT_SIGNATURE_PLACEHOLDER, annotate, read_pdf_info
from .blob_store import BlobStore
from .database import DocumentDatabase
from .errors import (
    BlobNotFound,
    DocumentError,
    DocumentNotFound,
    InvalidState,
    MissingInput,
    NotAvailable,
    StorageError,
    UnsupportedMediaType,
    ValidationError,
)
from .models import (
    DocumentDetail,
    DocumentEvent,
    DocumentStatus,
    DocumentSummary,
    PdfInfo,
    SignatureField,
)
from .signing_backend import RemoteStatus, Signer, SigningBackend
from .utils import looks_like_pdf, prefixed_filename, sanitize_filename

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

_REMOTE_TO_LOCAL: Dict[RemoteStatus, DocumentStatus] = {
    RemoteStatus.DRAFT: DocumentStatus.DRAFT,
    RemoteStatus.PENDING: DocumentStatus.PENDING_SIGNATURE,
    RemoteStatus.SIGNED: DocumentStatus.SIGNED,
    RemoteStatus.COMPLETED: DocumentStatus.COMPLETED,
}


def map_remote_status(status: RemoteStatus) -> Optional[DocumentStatus]:
    """Return the local status for a remote one, or None when it leaves the status unchanged."""
    return _REMOTE_TO_LOCAL.get(status)


class StatusListener(Protocol):
    """Receives committed status changes; the hook for a future push channel."""

    def status_changed(self, document_id: str, previous: DocumentStatus, current: DocumentStatus) -> None:
        ...


@dataclass
class StoredFile:
    data: bytes
    filename: str
    media_type: str = PDF_MEDIA_TYPE


@dataclass
class DocumentRecord:
    """
    Internal representation of a document with full state.

    Attributes:
        id: Unique document identifier (hex UUID)
        original_name: Filename supplied at upload
        stored_blob_ref: Blob holding the original upload; never reassigned
        file_size: Upload size in bytes
        status: Current lifecycle status
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        fields: Field list from the last add-fields call
        annotated_blob_ref: Blob holding the annotated copy of the original
        external_id: Signing backend id; set once on submission
        signed_blob_ref: Blob holding the completed signed artifact
        events: Chronological list of lifecycle events
    """

    id: str
    original_name: str
    stored_blob_ref: str
    file_size: int
    status: DocumentStatus
    created_at: datetime
    updated_at: datetime
    fields: Optional[List[SignatureField]] = None
    annotated_blob_ref: Optional[str] = None
    external_id: Optional[str] = None
    signed_blob_ref: Optional[str] = None
    events: List[DocumentEvent] = field(default_factory=list)

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "DocumentRecord":
        fields = data.get("fields")
        return cls(
            id=data["id"],
            original_name=data["original_name"],
            stored_blob_ref=data["stored_blob_ref"],
            file_size=data["file_size"],
            status=DocumentStatus(data["status"]),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            fields=[SignatureField.model_validate(item) for item in fields] if fields is not None else None,
            annotated_blob_ref=data.get("annotated_blob_ref"),
            external_id=data.get("external_id"),
            signed_blob_ref=data.get("signed_blob_ref"),
            events=[DocumentEvent(**event) for event in data.get("events", [])],
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "original_name": self.original_name,
            "stored_blob_ref": self.stored_blob_ref,
            "file_size": self.file_size,
            "status": self.status.value,
            "fields": [item.model_dump(mode="json") for item in self.fields] if self.fields is not None else None,
            "annotated_blob_ref": self.annotated_blob_ref,
            "external_id": self.external_id,
            "signed_blob_ref": self.signed_blob_ref,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "events": [event.model_dump() for event in self.events],
        }

    def add_event(self, message: str) -> None:
        self.events.append(DocumentEvent(timestamp=datetime.utcnow(), message=message))

    def to_summary(self) -> DocumentSummary:
        return DocumentSummary(
            id=self.id,
            original_name=self.original_name,
            file_size=self.file_size,
            status=self.status,
            external_id=self.external_id,
            field_count=len(self.fields or []),
            signed_available=self.signed_blob_ref is not None,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_detail(self) -> DocumentDetail:
        return DocumentDetail(
            **self.to_summary().model_dump(),
            fields=self.fields,
            annotated_available=self.annotated_blob_ref is not None,
            events=self.events,
        )


class DocumentManager:
    """
    Central coordinator for the document signing lifecycle.

    Args:
        database: Record store
        blob_store: Storage for original, annotated and signed PDFs
        signing_backend: External signing service adapter
        signature_placeholder: Text pre-filled into signature widgets
        default_signer_name: Signer display name used when none is given
        status_listener: Optional observer of committed status changes
    """

    def __init__(
        self,
        database: DocumentDatabase,
        blob_store: BlobStore,
        signing_backend: SigningBackend,
        *,
        signature_placeholder: str = DEFAULT_SIGNATURE_PLACEHOLDER,
        default_signer_name: str = "Signer",
        status_listener: Optional[StatusListener] = None,
    ) -> None:
        self.database = database
        self.blob_store = blob_store
        self.signing_backend = signing_backend
        self.signature_placeholder = signature_placeholder
        self.default_signer_name = default_signer_name
        self.status_listener = status_listener
        self._lock = Lock()
        self._submitting: Set[str] = set()

    # -- record helpers -------------------------------------------------

    def _load(self, document_id: str) -> DocumentRecord:
        data = self.database.get_document(document_id)
        if data is None:
            raise DocumentNotFound("Document not found")
        return DocumentRecord.from_row(data)

    def _save(self, record: DocumentRecord) -> None:
        record.updated_at = datetime.utcnow()
        self.database.save_document(record.to_row())

    def _get_record(self, document_id: str) -> DocumentRecord:
        with self._lock:
            return self._load(document_id)

    def _read_blob(self, ref: str, missing_message: str) -> bytes:
        try:
            return self.blob_store.get(ref)
        except BlobNotFound as exc:
            raise DocumentNotFound(missing_message) from exc

    def _discard_blob(self, ref: str) -> None:
        """Delete a blob, logging instead of raising on failure."""
        try:
            self.blob_store.delete(ref)
        except StorageError as exc:
            logger.error(f"Failed to delete blob {ref}: {exc.detail}; manual cleanup required")

    def _notify(self, document_id: str, previous: DocumentStatus, current: DocumentStatus) -> None:
        if previous == current or self.status_listener is None:
            return
        try:
            self.status_listener.status_changed(document_id, previous, current)
        except Exception:  # noqa: BLE001
            logger.exception(f"Status listener failed for document {document_id}")

    # -- queries --------------------------------------------------------

    def list_documents(self) -> List[DocumentSummary]:
        """Get all documents, newest first."""
        return [DocumentRecord.from_row(data).to_summary() for data in self.database.list_documents()]

    def get_document(self, document_id: str) -> DocumentDetail:
        return self._get_record(document_id).to_detail()

    def get_pdf_info(self, document_id: str) -> PdfInfo:
        record = self._get_record(document_id)
        return read_pdf_info(self._read_blob(record.stored_blob_ref, "Document file not found"))

    def get_document_file(self, document_id: str) -> StoredFile:
        """
        Return the original upload.

        Raises:
            DocumentNotFound: If the record or its blob is missing
        """
        record = self._get_record(document_id)
        data = self._read_blob(record.stored_blob_ref, "Document file not found")
        return StoredFile(data=data, filename=sanitize_filename(record.original_name))

    def get_annotated_file(self, document_id: str) -> StoredFile:
        record = self._get_record(document_id)
        if not record.annotated_blob_ref:
            raise NotAvailable("Document has no signature fields yet")
        data = self._read_blob(record.annotated_blob_ref, "Annotated document file not found")
        return StoredFile(data=data, filename=prefixed_filename("annotated", record.original_name))

    def get_signed_file(self, document_id: str) -> StoredFile:
        """
        Return the completed signed artifact, named ``signed_<original>``.

        Raises:
            DocumentNotFound: If the record or its signed blob is missing
            NotAvailable: If the artifact has not been retrieved yet; checking
                the status again retries the retrieval once completed
        """
        record = self._get_record(document_id)
        if not record.signed_blob_ref:
            raise NotAvailable("Signed document not available; check the document status to retry retrieval")
        data = self._read_blob(record.signed_blob_ref, "Signed document file not found")
        return StoredFile(data=data, filename=prefixed_filename("signed", record.original_name))

    # -- transitions ----------------------------------------------------

    def upload_document(
        self,
        data: Optional[bytes],
        filename: Optional[str],
        content_type: Optional[str],
    ) -> DocumentDetail:
        """
        Store a new PDF and create its draft record.

        The payload counts as a PDF when the declared content type says so, or
        when no specific type was declared and the bytes carry the PDF header.

        Raises:
            MissingInput: If no payload was supplied
            UnsupportedMediaType: If the payload is not identifiably a PDF
        """
        if not data:
            raise MissingInput("No file uploaded")

        declared = (content_type or "").lower()
        sniffable = declared in ("", "application/octet-stream")
        if "pdf" not in declared and not (sniffable and looks_like_pdf(data)):
            raise UnsupportedMediaType("Only PDF files are allowed")

        stored_blob_ref = self.blob_store.put(data)
        now = datetime.utcnow()
        record = DocumentRecord(
            id=uuid4().hex,
            original_name=filename or "document.pdf",
            stored_blob_ref=stored_blob_ref,
            file_size=len(data),
            status=DocumentStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        record.add_event("Document uploaded.")
        with self._lock:
            self._save(record)

        logger.info(f"Uploaded document {record.id} ({record.original_name}, {record.file_size} bytes)")
        return record.to_detail()

    def _parse_fields(self, fields: Sequence[Union[SignatureField, Dict[str, Any]]]) -> List[SignatureField]:
        if not fields:
            raise ValidationError("At least one signature field is required")
        parsed = []
        for index, item in enumerate(fields, start=1):
            if isinstance(item, SignatureField):
                parsed.append(item)
                continue
            try:
                parsed.append(SignatureField.model_validate(item))
            except pydantic.ValidationError as exc:
                problems = "; ".join(
                    f"{'.'.join(str(part) for part in error['loc']) or 'field'}: {error['msg']}"
                    for error in exc.errors()
                )
                raise ValidationError(f"Invalid signature field #{index}: {problems}") from exc
        return parsed

    def _check_fields_editable(self, record: DocumentRecord) -> None:
        if record.status not in (DocumentStatus.DRAFT, DocumentStatus.PENDING_SIGNATURE):
            raise InvalidState(f"Signature fields cannot be changed in status {record.status.value}")
        if record.external_id or record.id in self._submitting:
            raise InvalidState("Signature fields are frozen once the document is submitted for signature")

    def add_signature_fields(
        self,
        document_id: str,
        fields: Sequence[Union[SignatureField, Dict[str, Any]]],
    ) -> DocumentDetail:
        """
        Annotate the original PDF with the given fields and replace the field list.

        The annotated PDF is stored as its own blob; the original upload is
        never overwritten. Any previous annotated blob is discarded. Status
        becomes pending_signature, even if it already was.

        Raises:
            ValidationError: If the list is empty or an entry is malformed
            InvalidState: If the document was submitted or is past pending_signature
            AnnotationError: If the PDF cannot be annotated (nothing is committed)
        """
        parsed = self._parse_fields(fields)

        with self._lock:
            record = self._load(document_id)
            self._check_fields_editable(record)
            source_ref = record.stored_blob_ref

        source = self._read_blob(source_ref, "Document file not found")
        annotated = annotate(source, parsed, signature_placeholder=self.signature_placeholder)
        annotated_ref = self.blob_store.put(annotated)

        with self._lock:
            try:
                record = self._load(document_id)
                self._check_fields_editable(record)
            except DocumentError:
                self._discard_blob(annotated_ref)
                raise
            previous_ref = record.annotated_blob_ref
            previous_status = record.status
            record.fields = parsed
            record.annotated_blob_ref = annotated_ref
            record.status = DocumentStatus.PENDING_SIGNATURE
            record.add_event(f"Signature fields set ({len(parsed)} field(s)).")
            self._save(record)

        if previous_ref:
            self._discard_blob(previous_ref)
        logger.info(f"Document {document_id} annotated with {len(parsed)} field(s)")
        self._notify(document_id, previous_status, record.status)
        return record.to_detail()

    def submit_for_signature(
        self,
        document_id: str,
        signer_email: str,
        signer_name: Optional[str] = None,
    ) -> DocumentDetail:
        """
        Register the original PDF with the signing backend and distribute it.

        On success the external id is recorded and the status stays
        pending_signature; only a later status check advances it. If either
        remote call fails nothing is committed, and the caller may submit again,
        which creates a fresh remote document.

        Raises:
            ValidationError: If the signer email is empty
            InvalidState: If the document is not pending_signature with fields,
                was already submitted, or a submission is already running
            BackendError: If the signing backend fails
        """
        email = (signer_email or "").strip()
        if not email:
            raise ValidationError("Signer email is required")

        with self._lock:
            record = self._load(document_id)
            if record.status != DocumentStatus.PENDING_SIGNATURE:
                raise InvalidState("Document must be in pending signature status")
            if not record.fields:
                raise InvalidState("Document must have signature fields before submitting")
            if record.external_id:
                raise InvalidState("Document has already been submitted for signature")
            if document_id in self._submitting:
                raise InvalidState("A submission for this document is already in progress")
            self._submitting.add(document_id)

        try:
            pdf_bytes = self._read_blob(record.stored_blob_ref, "Document file not found")
            signers = [Signer(name=(signer_name or "").strip() or self.default_signer_name, email=email)]
            external_id = self.signing_backend.create_remote_document(
                record.original_name, pdf_bytes, record.original_name, signers
            )
            try:
                self.signing_backend.distribute(external_id)
            except DocumentError:
                logger.warning(
                    f"Remote document {external_id} could not be distributed; document {document_id} left unsubmitted"
                )
                raise

            with self._lock:
                try:
                    record = self._load(document_id)
                except DocumentNotFound:
                    logger.warning(f"Document {document_id} was deleted during submission; remote document {external_id} is orphaned")
                    raise
                record.external_id = external_id
                record.add_event(f"Submitted for signature to {email} (external id {external_id}).")
                self._save(record)
        finally:
            with self._lock:
                self._submitting.discard(document_id)

        logger.info(f"Document {document_id} submitted for signature as {external_id}")
        return record.to_detail()

    def _retrieve_artifact(self, document_id: str, external_id: str) -> Tuple[Optional[str], Optional[str]]:
        """Fetch and store the signed artifact; returns (blob ref, failure reason)."""
        try:
            data = self.signing_backend.fetch_completed_artifact(external_id)
            return self.blob_store.put(data), None
        except DocumentError as exc:
            logger.warning(f"Failed to retrieve signed document for {document_id}: {exc.detail}")
            return None, exc.detail

    def check_status(self, document_id: str) -> DocumentDetail:
        """
        Reconcile the local record with the signing backend.

        The remote status is mapped through a fixed table; an unknown remote
        status leaves the record untouched. When the mapped status is completed
        and no signed artifact is stored yet, the artifact is fetched. A failed
        fetch is logged and recorded as an event but does not hold back the
        completed status; the next status check retries it.

        Raises:
            InvalidState: If the document was never submitted
            BackendError: If the remote status cannot be read
        """
        with self._lock:
            record = self._load(document_id)
            external_id = record.external_id
            if not external_id:
                raise InvalidState("Document not submitted for signature")

        remote_status = self.signing_backend.get_remote_status(external_id)
        target = map_remote_status(remote_status)
        if target is None:
            logger.warning(f"Ignoring unmapped remote status {remote_status.value} for document {document_id}")
            return record.to_detail()

        artifact_ref = artifact_error = None
        if target == DocumentStatus.COMPLETED and not record.signed_blob_ref:
            artifact_ref, artifact_error = self._retrieve_artifact(document_id, external_id)

        duplicate_ref = None
        with self._lock:
            try:
                record = self._load(document_id)
            except DocumentNotFound:
                if artifact_ref:
                    self._discard_blob(artifact_ref)
                raise
            previous = record.status
            record.status = target
            if previous != target:
                record.add_event(f"Status changed from {previous.value} to {target.value}.")
            if artifact_ref:
                if record.signed_blob_ref:
                    duplicate_ref = artifact_ref
                else:
                    record.signed_blob_ref = artifact_ref
                    record.add_event("Signed document retrieved.")
            if artifact_error:
                message = f"Signed document retrieval failed: {artifact_error}"
                # Repeated polls with the same failure collapse into one event.
                if not record.events or record.events[-1].message != message:
                    record.add_event(message)
            self._save(record)

        if duplicate_ref:
            self._discard_blob(duplicate_ref)
        if previous != target:
            logger.info(f"Document {document_id} status {previous.value} -> {target.value}")
        self._notify(document_id, previous, target)
        return record.to_detail()

    def delete_document(self, document_id: str) -> None:
        """
        Delete a document, its blobs and its record.

        The record goes first, under the lock, so a concurrent field edit or
        status check can no longer commit a new blob ref onto it; those
        operations find the record gone and discard their own blob. Blob
        removal is best-effort: failures are logged for manual follow-up.

        Raises:
            DocumentNotFound: If the document does not exist
        """
        with self._lock:
            record = self._load(document_id)
            if not self.database.delete_document(document_id):
                raise DocumentNotFound("Document not found")

        for ref in (record.stored_blob_ref, record.annotated_blob_ref, record.signed_blob_ref):
            if ref:
                self._discard_blob(ref)
        logger.info(f"Deleted document {document_id}")
