from __future__ import annotations

from stageasset.db.models import AssetRequirement
from stageasset.types import FileMeta


def normalize_extension(value: str) -> str:
    value = value.strip().lower()
    if value and not value.startswith("."):
        value = f".{value}"
    return value


def validate_file(requirement: AssetRequirement, file_meta: FileMeta) -> list[str]:
    """Return every rule the file breaks, in a stable order. Empty means valid."""
    violations: list[str] = []

    max_size = requirement.max_file_size_bytes
    if max_size is not None and file_meta.size_bytes > max_size:
        violations.append(
            f"file size {file_meta.size_bytes} bytes exceeds the limit of {max_size} bytes"
        )

    accepted = [normalize_extension(item) for item in requirement.accepted_file_types_json or [] if item.strip()]
    if accepted and file_meta.extension not in accepted:
        shown = file_meta.extension or "(none)"
        violations.append(f"file type {shown} is not accepted; expected one of {', '.join(accepted)}")

    min_width = requirement.min_image_width
    min_height = requirement.min_image_height
    if (min_width or min_height) and file_meta.is_image:
        if file_meta.image_width is None or file_meta.image_height is None:
            violations.append("image dimensions are required for this asset")
        else:
            if min_width and file_meta.image_width < min_width:
                violations.append(f"image width must be at least {min_width}px")
            if min_height and file_meta.image_height < min_height:
                violations.append(f"image height must be at least {min_height}px")

    return violations
