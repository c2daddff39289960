"""
Tests for UI to PDF coordinate mapping.
"""

import pytest

from esign_backend.errors import AnnotationError, InvalidFieldPage
from esign_backend.geometry import FieldRect, map_field, resolve_page_index
from esign_backend.models import SignatureField


def _field(**overrides):
    data = {"id": "f", "x": 100, "y": 100, "width": 200, "height": 50, "page": 1, "kind": "signature"}
    data.update(overrides)
    return SignatureField(**data)


class TestMapField:
    def test_letter_page_example(self):
        """The documented 612x792 example maps to y = 792 - 100 - 50."""
        assert map_field(_field(), 612, 792) == FieldRect(x=100, y=642, width=200, height=50)

    @pytest.mark.parametrize(
        "x, y, width, height, page_height",
        [
            (0, 0, 10, 10, 792),
            (36.5, 700.25, 120.75, 40.5, 792),
            (10, 0, 595, 842, 842),
            (300, 400, 1, 1, 1008),
        ],
    )
    def test_vertical_axis_round_trip(self, x, y, width, height, page_height):
        """pdf_y + height + ui_y always equals the page height."""
        rect = map_field(_field(x=x, y=y, width=width, height=height), 612, page_height)
        assert rect.y + height + y == page_height
        assert rect.x == x
        assert (rect.width, rect.height) == (width, height)

    def test_field_at_top_left_sits_at_page_top(self):
        rect = map_field(_field(x=0, y=0, height=20), 612, 792)
        assert rect.y + rect.height == 792

    def test_mapping_does_not_modify_field(self):
        field = _field()
        map_field(field, 612, 792)
        assert (field.x, field.y) == (100, 100)


class TestResolvePageIndex:
    def test_one_based_to_zero_based(self):
        assert resolve_page_index(_field(page=1), 2) == 0
        assert resolve_page_index(_field(page=2), 2) == 1

    def test_page_past_end_is_rejected(self):
        with pytest.raises(InvalidFieldPage, match="page 3"):
            resolve_page_index(_field(page=3), 2)

    def test_invalid_page_is_an_annotation_error(self):
        with pytest.raises(AnnotationError):
            resolve_page_index(_field(page=5), 1)


class TestSignatureFieldModel:
    def test_type_key_accepted_as_kind(self):
        field = SignatureField.model_validate(
            {"id": "t", "x": 1, "y": 2, "width": 3, "height": 4, "page": 1, "type": "checkbox"}
        )
        assert field.kind.value == "checkbox"

    def test_page_must_be_positive(self):
        with pytest.raises(ValueError):
            _field(page=0)

    def test_geometry_is_required(self):
        with pytest.raises(ValueError):
            SignatureField.model_validate({"id": "t", "x": 1, "page": 1, "kind": "text"})
