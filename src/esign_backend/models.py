from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    SIGNED = "signed"
    COMPLETED = "completed"


class FieldKind(str, Enum):
    SIGNATURE = "signature"
    TEXT = "text"
    CHECKBOX = "checkbox"


class SignatureField(BaseModel):
    """
    Placement descriptor for one form widget.

    Geometry is in UI space: points, origin at the top-left corner of the page.
    Older clients send the widget kind under ``type``; both keys are accepted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    page: int = Field(ge=1)
    kind: FieldKind = Field(validation_alias=AliasChoices("kind", "type"))
    label: Optional[str] = None


class DocumentEvent(BaseModel):
    timestamp: datetime
    message: str


class DocumentSummary(BaseModel):
    id: str
    original_name: str
    file_size: int
    status: DocumentStatus
    external_id: Optional[str] = None
    field_count: int = 0
    signed_available: bool = False
    created_at: datetime
    updated_at: datetime


class DocumentDetail(DocumentSummary):
    fields: Optional[List[SignatureField]] = None
    annotated_available: bool = False
    events: List[DocumentEvent] = Field(default_factory=list)


class PageSize(BaseModel):
    width: float
    height: float


class PdfInfo(BaseModel):
    page_count: int
    sizes: List[PageSize]


class SignatureFieldsRequest(BaseModel):
    fields: List[SignatureField]


class SubmitRequest(BaseModel):
    signer_email: str = Field(validation_alias=AliasChoices("signerEmail", "signer_email"))
    signer_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("signerName", "signer_name")
    )

    @field_validator("signer_email")
    @classmethod
    def _require_email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Signer email is required")
        return value
