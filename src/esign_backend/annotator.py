"""
PDF form annotation with PyMuPDF.

Places one interactive widget per signature field onto a copy of the source
PDF. Geometry is resolved through :mod:`esign_backend.geometry` into PDF page
space and then handed to PyMuPDF, whose page coordinates have a top-left
origin, through the page transformation matrix.
"""

from __future__ import annotations

import logging
from typing import Sequence

import fitz  # PyMuPDF

from .errors import AnnotationError
from .geometry import map_field, resolve_page_index
from .models import FieldKind, PageSize, PdfInfo, SignatureField

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_PLACEHOLDER = "[SIGNATURE FIELD]"


def _open_pdf(pdf_bytes: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as exc:  # noqa: BLE001
        raise AnnotationError(f"Source is not a readable PDF: {exc}") from exc
    if not doc.is_pdf or doc.page_count == 0:
        doc.close()
        raise AnnotationError("Source is not a readable PDF")
    return doc


def _build_widget(field: SignatureField, rect: fitz.Rect, signature_placeholder: str) -> fitz.Widget:
    widget = fitz.Widget()
    widget.field_name = field.id
    widget.rect = rect
    if field.kind == FieldKind.CHECKBOX:
        widget.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
        widget.field_value = False
    else:
        widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        if field.kind == FieldKind.SIGNATURE:
            widget.field_value = signature_placeholder
        else:
            widget.field_value = field.label or ""
    return widget


def annotate(
    pdf_bytes: bytes,
    fields: Sequence[SignatureField],
    *,
    signature_placeholder: str = DEFAULT_SIGNATURE_PLACEHOLDER,
) -> bytes:
    """
    Return a new PDF with a form widget embedded for every field.

    Fields are applied in the given order. Duplicate ids are not merged; each
    entry produces its own widget.

    Args:
        pdf_bytes: Source PDF; never modified
        fields: Field descriptors in UI space
        signature_placeholder: Text pre-filled into signature placeholders

    Returns:
        Bytes of the annotated PDF

    Raises:
        AnnotationError: If the source cannot be parsed or any field fails to
            map onto a page (InvalidFieldPage). No partial output is produced.
    """
    doc = _open_pdf(pdf_bytes)
    try:
        for field in fields:
            page = doc[resolve_page_index(field, doc.page_count)]
            mediabox = page.mediabox
            mapped = map_field(field, mediabox.width, mediabox.height)
            pdf_rect = fitz.Rect(mapped.x, mapped.y, mapped.x + mapped.width, mapped.y + mapped.height)
            try:
                page.add_widget(_build_widget(field, pdf_rect * page.transformation_matrix, signature_placeholder))
            except Exception as exc:  # noqa: BLE001
                raise AnnotationError(f"Could not place field '{field.id}': {exc}") from exc
        annotated = doc.tobytes(garbage=1, deflate=True)
    finally:
        doc.close()

    logger.info(f"Annotated PDF with {len(fields)} field(s)")
    return annotated


def read_pdf_info(pdf_bytes: bytes) -> PdfInfo:
    """Return the page count and per-page size (points) of a PDF."""
    doc = _open_pdf(pdf_bytes)
    try:
        sizes = [PageSize(width=page.mediabox.width, height=page.mediabox.height) for page in doc]
    finally:
        doc.close()
    return PdfInfo(page_count=len(sizes), sizes=sizes)
