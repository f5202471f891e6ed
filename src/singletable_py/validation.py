from __future__ import annotations

import re
from collections.abc import Sequence

MaxFieldNameLength = 255
MaxNestedDepth = 32

_FIELD_PART = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")
_RESOURCE_NAME = re.compile(r"^[a-zA-Z0-9_.-]+$")


class NameValidationError(ValueError):
    def __init__(self, *, type: str, detail: str) -> None:
        super().__init__(f"{type}: {detail}")
        self.type = type
        self.detail = detail


def parse_field_path(field: str | Sequence[str]) -> tuple[str, ...]:
    """Normalise ``"a.b"`` or ``["a", "b"]`` into a validated path tuple."""
    if isinstance(field, str):
        parts = tuple(field.split("."))
    elif isinstance(field, Sequence):
        parts = tuple(field)
    else:
        raise NameValidationError(type="InvalidField", detail=f"field path must be a string or sequence: {field!r}")

    if not parts:
        raise NameValidationError(type="InvalidField", detail="field path cannot be empty")
    if len(parts) > MaxNestedDepth:
        raise NameValidationError(type="InvalidField", detail="nested field depth exceeds maximum")

    for part in parts:
        validate_field_part(part)
    return parts


def validate_field_part(part: object) -> None:
    if not isinstance(part, str) or not part:
        raise NameValidationError(type="InvalidField", detail="field part cannot be empty")
    if len(part) > MaxFieldNameLength:
        raise NameValidationError(type="InvalidField", detail="field name exceeds maximum length")
    if _FIELD_PART.match(part) is None:
        raise NameValidationError(
            type="InvalidField",
            detail=(
                f"field part {part!r} must start with a letter or underscore and contain only "
                "alphanumeric characters, underscores and hyphens"
            ),
        )


def validate_table_name(name: str) -> None:
    if len(name) < 3 or len(name) > 255:
        raise NameValidationError(type="InvalidTableName", detail=f"table name length invalid: {name!r}")
    if _RESOURCE_NAME.match(name) is None:
        raise NameValidationError(type="InvalidTableName", detail=f"table name contains invalid characters: {name!r}")


def validate_index_name(name: str) -> None:
    if len(name) < 3 or len(name) > 255:
        raise NameValidationError(type="InvalidIndexName", detail=f"index name length invalid: {name!r}")
    if _RESOURCE_NAME.match(name) is None:
        raise NameValidationError(type="InvalidIndexName", detail=f"index name contains invalid characters: {name!r}")


def validate_attribute_name(name: str) -> None:
    if not name:
        raise NameValidationError(type="InvalidAttribute", detail="attribute name cannot be empty")
    if len(name) > MaxFieldNameLength:
        raise NameValidationError(type="InvalidAttribute", detail="attribute name exceeds maximum length")
