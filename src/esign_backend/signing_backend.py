"""
Signing backend capability and its Documenso implementation.

The lifecycle manager only talks to the ``SigningBackend`` protocol. The
Documenso adapter reaches the v1 REST API over httpx with a bounded timeout;
a timeout is always reported as a failure, since the remote side effect may or
may not have happened. Nothing in this module retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from .errors import BackendError, NotReady

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.documenso.com/api/v1"


class RemoteStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SIGNED = "SIGNED"
    COMPLETED = "COMPLETED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "RemoteStatus":
        """Map a backend status string onto the enum; anything unrecognised is UNKNOWN."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Signer:
    name: str
    email: str
    role: str = "SIGNER"


class SigningBackend(Protocol):
    def create_remote_document(
        self, title: str, pdf_bytes: bytes, file_name: str, signers: Sequence[Signer]
    ) -> str:
        """Register a document with its signers, upload its bytes and return the external id."""
        ...

    def distribute(self, external_id: str) -> None:
        """Send signing requests to the registered signers."""
        ...

    def get_remote_status(self, external_id: str) -> RemoteStatus:
        ...

    def fetch_completed_artifact(self, external_id: str) -> bytes:
        """Download the signed PDF; raises NotReady unless the document is COMPLETED."""
        ...


def _is_transient(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class DocumensoBackend:
    """
    Documenso v1 REST adapter.

    Args:
        api_key: Documenso API token, sent as a bearer credential
        base_url: API root, e.g. https://app.documenso.com/api/v1
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)

    Note:
        Presigned upload and download URLs point at object storage and must
        not receive the API token, so they go through a separate client.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Documenso API key is required")
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )
        self._storage_client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()
        self._storage_client.close()

    def _send(self, client: httpx.Client, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise BackendError(f"Failed to {action}: request timed out", transient=True) from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise BackendError(
                f"Failed to {action}: HTTP {status_code} {exc.response.reason_phrase}",
                transient=_is_transient(status_code),
            ) from exc
        except httpx.TransportError as exc:
            raise BackendError(f"Failed to {action}: {exc}", transient=True) from exc
        return response

    def _json(self, response: httpx.Response, action: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError(f"Failed to {action}: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise BackendError(f"Failed to {action}: unexpected response payload")
        return payload

    def create_remote_document(
        self, title: str, pdf_bytes: bytes, file_name: str, signers: Sequence[Signer]
    ) -> str:
        action = "create document in Documenso"
        response = self._send(
            self._client,
            "POST",
            "/documents",
            action,
            json={
                "title": title,
                "recipients": [
                    {"name": signer.name, "email": signer.email, "role": signer.role} for signer in signers
                ],
            },
        )
        payload = self._json(response, action)
        document_id = payload.get("documentId")
        upload_url = payload.get("uploadUrl")
        if document_id is None or not upload_url:
            raise BackendError(f"Failed to {action}: response lacks documentId or uploadUrl")

        external_id = str(document_id)
        try:
            self._send(
                self._storage_client,
                "PUT",
                upload_url,
                f"upload {file_name}",
                content=pdf_bytes,
                headers={"Content-Type": "application/pdf"},
            )
        except BackendError:
            logger.warning(f"Documenso document {external_id} was registered but its upload failed; it is orphaned")
            raise

        logger.info(f"Created Documenso document {external_id} for {file_name}")
        return external_id

    def distribute(self, external_id: str) -> None:
        self._send(
            self._client,
            "POST",
            f"/documents/{external_id}/send",
            "send document for signature",
            json={"sendEmail": True},
        )
        logger.info(f"Documenso document {external_id} sent for signing")

    def get_remote_status(self, external_id: str) -> RemoteStatus:
        action = "get document status"
        payload = self._json(self._send(self._client, "GET", f"/documents/{external_id}", action), action)
        status = RemoteStatus.parse(payload.get("status"))
        if status == RemoteStatus.UNKNOWN:
            logger.warning(f"Documenso document {external_id} reported unmapped status {payload.get('status')!r}")
        return status

    def fetch_completed_artifact(self, external_id: str) -> bytes:
        status = self.get_remote_status(external_id)
        if status != RemoteStatus.COMPLETED:
            raise NotReady(f"Document is not completed. Current status: {status.value}")

        action = "download signed document"
        payload = self._json(self._send(self._client, "GET", f"/documents/{external_id}/download", action), action)
        download_url = payload.get("downloadUrl")
        if not download_url:
            raise BackendError(f"Failed to {action}: response lacks downloadUrl")
        return self._send(self._storage_client, "GET", download_url, action).content
