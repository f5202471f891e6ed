from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .errors import ConfigurationError
from .layout import Layout
from .validation import NameValidationError, parse_field_path

type KeyPath = tuple[str, ...]

ID_FIELD = "_id"


def _normalize_paths(fields: Sequence[str | Sequence[str]]) -> tuple[KeyPath, ...]:
    if isinstance(fields, str):
        raise ConfigurationError(f"key fields must be a sequence of paths, not a string: {fields!r}")
    try:
        return tuple(parse_field_path(f) for f in fields)
    except NameValidationError as err:
        raise ConfigurationError(str(err)) from err


@dataclass(frozen=True)
class AccessPattern:
    """Binds record paths to the partition/sort key of one find key index.

    Each entry of ``partition_key_fields`` / ``sort_key_fields`` is one key
    segment: a path into the record (``"email"``, ``"address.city"`` or
    ``["address", "city"]``). Segment values are joined in declared order.
    """

    index_name: str
    partition_key_fields: tuple[KeyPath, ...] = ()
    sort_key_fields: tuple[KeyPath, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "partition_key_fields", _normalize_paths(self.partition_key_fields))
        object.__setattr__(self, "sort_key_fields", _normalize_paths(self.sort_key_fields))

    @property
    def key_paths(self) -> tuple[KeyPath, ...]:
        return self.partition_key_fields + self.sort_key_fields


@dataclass(frozen=True)
class Collection:
    name: str
    layout: Layout
    access_patterns: tuple[AccessPattern, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "access_patterns", tuple(self.access_patterns))

    def validate(self) -> None:
        if not self.name:
            raise ConfigurationError("collection name is required")

        self.layout.validate()

        bound: set[str] = set()
        for pattern in self.access_patterns:
            idx = self.layout.find_key(pattern.index_name)
            if pattern.index_name in bound:
                raise ConfigurationError(
                    f"collection {self.name}: index {pattern.index_name} is bound by more than one access pattern"
                )
            bound.add(pattern.index_name)

            if not pattern.partition_key_fields and not pattern.sort_key_fields:
                raise ConfigurationError(
                    f"collection {self.name}: access pattern on {pattern.index_name} declares no key fields"
                )
            if pattern.sort_key_fields and idx.sort_key is None:
                raise ConfigurationError(
                    f"collection {self.name}: index {pattern.index_name} has no sort key "
                    "but the access pattern declares sort key fields"
                )


def access_pattern(
    index_name: str,
    *,
    partition: Sequence[str | Sequence[str]] = (),
    sort: Sequence[str | Sequence[str]] = (),
) -> AccessPattern:
    return AccessPattern(
        index_name=index_name,
        partition_key_fields=tuple(partition),  # type: ignore[arg-type]
        sort_key_fields=tuple(sort),  # type: ignore[arg-type]
    )
