"""
Conversion between UI field geometry and PDF page space.

The editor measures fields from the top-left corner of a page; PDF page space
has its origin at the bottom-left. Both use points, so only the vertical axis
changes:

    pdf_x = ui_x
    pdf_y = page_height - ui_y - field_height

Everything here is pure and has no PDF dependency.
"""

from __future__ import annotations

from typing import NamedTuple

from .errors import InvalidFieldPage
from .models import SignatureField


class FieldRect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def resolve_page_index(field: SignatureField, page_count: int) -> int:
    """
    Return the 0-based index of the page a field targets.

    Raises:
        InvalidFieldPage: If ``field.page`` is not within ``1..page_count``.
    """
    if field.page < 1 or field.page > page_count:
        raise InvalidFieldPage(
            f"Field '{field.id}' targets page {field.page} but the document has {page_count} page(s)"
        )
    return field.page - 1


def map_field(field: SignatureField, page_width: float, page_height: float) -> FieldRect:
    """
    Map a UI-space field onto the PDF page space of a page.

    Args:
        field: Field descriptor in UI space
        page_width: Width of the target page in points
        page_height: Height of the target page in points

    Returns:
        FieldRect with a bottom-left origin

    Example:
        >>> map_field(SignatureField(id="s", x=100, y=100, width=200, height=50, page=1, kind="signature"), 612, 792)
        FieldRect(x=100.0, y=642.0, width=200.0, height=50.0)
    """
    return FieldRect(
        x=field.x,
        y=page_height - field.y - field.height,
        width=field.width,
        height=field.height,
    )
