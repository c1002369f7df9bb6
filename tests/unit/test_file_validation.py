import pytest
from pydantic import ValidationError as PydanticValidationError

from stageasset.core.validation import normalize_extension, validate_file
from stageasset.db.models import AssetRequirement
from stageasset.types import FileMeta


def _headshot(**overrides) -> AssetRequirement:
    values = {
        "event_id": 1,
        "asset_type": "headshot",
        "label": "Headshot",
        "is_required": True,
        "accepted_file_types_json": [".jpg", ".PNG"],
        "max_file_size_bytes": 1000,
        "min_image_width": 400,
        "min_image_height": 300,
    }
    values.update(overrides)
    return AssetRequirement(**values)


def test_valid_image_passes() -> None:
    meta = FileMeta(file_name="me.JPG", size_bytes=900, mime_type="image/jpeg", image_width=800, image_height=600)
    assert validate_file(_headshot(), meta) == []


def test_every_violation_is_reported() -> None:
    meta = FileMeta(file_name="me.gif", size_bytes=5000, mime_type="image/gif", image_width=100, image_height=100)
    violations = validate_file(_headshot(), meta)
    assert len(violations) == 4
    assert "exceeds the limit" in violations[0]
    assert ".gif" in violations[1]
    assert "width" in violations[2]
    assert "height" in violations[3]


def test_missing_dimensions_on_image_is_a_violation() -> None:
    meta = FileMeta(file_name="me.png", size_bytes=10, mime_type="image/png")
    assert validate_file(_headshot(), meta) == ["image dimensions are required for this asset"]


def test_dimension_rules_ignore_non_images() -> None:
    requirement = _headshot(accepted_file_types_json=[".pdf", ".png"])
    meta = FileMeta(file_name="deck.pdf", size_bytes=10, mime_type="application/pdf")
    assert validate_file(requirement, meta) == []


def test_unset_constraints_accept_anything() -> None:
    requirement = _headshot(
        accepted_file_types_json=[],
        max_file_size_bytes=None,
        min_image_width=None,
        min_image_height=None,
    )
    meta = FileMeta(file_name="README", size_bytes=10**9, mime_type="image/png")
    assert validate_file(requirement, meta) == []


def test_extension_normalization() -> None:
    assert normalize_extension("JPG") == ".jpg"
    assert normalize_extension(" .Png ") == ".png"


def test_file_meta_rejects_empty_file() -> None:
    with pytest.raises(PydanticValidationError):
        FileMeta(file_name="a.png", size_bytes=0, mime_type="image/png")
