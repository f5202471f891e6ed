from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .codec import serialize
from .collection import ID_FIELD, AccessPattern, Collection, KeyPath
from .errors import InvalidFindDescriptorError, InvalidIndexedFieldValueError, MissingAttributeError

_MISSING = object()


def get_path(record: Mapping[str, Any], path: KeyPath) -> Any:
    current: Any = record
    for part in path:
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def has_path(record: Mapping[str, Any], path: KeyPath) -> bool:
    value = get_path(record, path)
    return value is not _MISSING and value is not None


def _index_value(collection_name: str, path: KeyPath, value: Any) -> str:
    if value is _MISSING or value is None:
        raise MissingAttributeError(collection_name=collection_name, path=path)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    raise InvalidIndexedFieldValueError(collection_name=collection_name, path=path, value=value)


def assemble_key_value(
    collection: Collection, record: Mapping[str, Any], paths: Sequence[KeyPath]
) -> str:
    separator = collection.layout.index_key_separator
    return separator.join(_index_value(collection.name, path, get_path(record, path)) for path in paths)


def record_id(collection: Collection, record: Mapping[str, Any]) -> str:
    value = record.get(ID_FIELD)
    if not isinstance(value, str) or not value:
        raise MissingAttributeError(collection_name=collection.name, path=(ID_FIELD,))
    return value


def primary_key_values(collection: Collection, id: str) -> dict[str, str]:
    primary = collection.layout.primary_key
    out = {primary.partition_key: id}
    if primary.sort_key is not None:
        out[primary.sort_key] = collection.name
    return out


def key_for_id(collection: Collection, id: str) -> dict[str, Any]:
    if not isinstance(id, str) or not id:
        raise MissingAttributeError(collection_name=collection.name, path=(ID_FIELD,))
    return {name: serialize(value) for name, value in primary_key_values(collection, id).items()}


def access_pattern_values(
    collection: Collection, pattern: AccessPattern, record: Mapping[str, Any]
) -> dict[str, str]:
    idx = collection.layout.find_key(pattern.index_name)
    out: dict[str, str] = {}
    if pattern.partition_key_fields:
        out[idx.partition_key] = assemble_key_value(collection, record, pattern.partition_key_fields)
    else:
        # Key attributes cannot be empty; an unkeyed partition groups the whole collection.
        out[idx.partition_key] = collection.name
    if idx.sort_key is not None:
        # An item only enters an index when every key attribute of that index is present.
        if pattern.sort_key_fields:
            out[idx.sort_key] = assemble_key_value(collection, record, pattern.sort_key_fields)
        else:
            out[idx.sort_key] = collection.name
    return out


def derive_keys(collection: Collection, record: Mapping[str, Any]) -> dict[str, str]:
    """Return every key attribute the record's single stored item carries.

    Pure: the same collection and record always produce the same map.
    """
    item_id = record_id(collection, record)
    out = primary_key_values(collection, item_id)

    list_all = collection.layout.list_all_key
    if list_all is not None:
        out[list_all.partition_key] = collection.name
        if list_all.sort_key is not None:
            out[list_all.sort_key] = item_id

    for pattern in collection.access_patterns:
        out.update(access_pattern_values(collection, pattern, record))
    return out


@dataclass(frozen=True)
class FindKey:
    pattern: AccessPattern
    partition_attribute: str
    partition_value: str
    sort_attribute: str | None
    sort_prefix: str | None


def _covers(pattern: AccessPattern, query: Mapping[str, Any], query_paths: set[KeyPath]) -> bool:
    if not all(has_path(query, p) for p in pattern.partition_key_fields):
        return False

    supplied = [has_path(query, p) for p in pattern.sort_key_fields]
    # Supplied sort segments must be a leading run of the declared ones.
    if any(later and not earlier for earlier, later in zip(supplied, supplied[1:], strict=False)):
        return False

    used = set(pattern.partition_key_fields) | {
        p for p, present in zip(pattern.sort_key_fields, supplied, strict=True) if present
    }
    return query_paths <= used


def _leaf_paths(query: Mapping[str, Any], prefix: KeyPath = ()) -> set[KeyPath]:
    out: set[KeyPath] = set()
    for key, value in query.items():
        path = (*prefix, str(key))
        if isinstance(value, Mapping) and value:
            out |= _leaf_paths(value, path)
        else:
            out.add(path)
    return out


def _merge(target: dict[str, Any], key: str, value: Any, where: KeyPath) -> None:
    if isinstance(value, Mapping) and value:
        node = target.setdefault(key, {})
        if not isinstance(node, dict):
            raise InvalidFindDescriptorError(f"query path {'.'.join((*where, key))!r} is given twice")
        for child_key, child in value.items():
            _merge(node, str(child_key), child, (*where, key))
        return
    if key in target:
        raise InvalidFindDescriptorError(f"query path {'.'.join((*where, key))!r} is given twice")
    target[key] = value


def _expand_dotted(query: Mapping[str, Any]) -> dict[str, Any]:
    """Merge dotted and nested query keys into a fresh nested dict."""
    out: dict[str, Any] = {}
    for key, value in query.items():
        *parents, leaf = str(key).split(".")
        node = out
        for depth, part in enumerate(parents):
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise InvalidFindDescriptorError(
                    f"query path {'.'.join(parents[: depth + 1])!r} is given twice"
                )
        _merge(node, leaf, value, tuple(parents))
    return out


def resolve_find_key(collection: Collection, query: Mapping[str, Any]) -> FindKey:
    """Select the single access pattern able to answer ``query``."""
    if not query:
        raise InvalidFindDescriptorError(f"{collection.name}: find requires at least one field")

    nested = _expand_dotted(query)
    query_paths = _leaf_paths(nested)
    candidates = [p for p in collection.access_patterns if _covers(p, nested, query_paths)]
    if not candidates:
        fields = sorted(".".join(p) for p in query_paths)
        raise InvalidFindDescriptorError(f"{collection.name}: no access pattern matches fields {fields}")
    if len(candidates) > 1:
        names = [p.index_name for p in candidates]
        raise InvalidFindDescriptorError(f"{collection.name}: query matches several access patterns {names}")

    (pattern,) = candidates
    idx = collection.layout.find_key(pattern.index_name)
    if pattern.partition_key_fields:
        partition_value = assemble_key_value(collection, nested, pattern.partition_key_fields)
    else:
        partition_value = collection.name

    supplied = [p for p in pattern.sort_key_fields if has_path(nested, p)]
    sort_prefix = assemble_key_value(collection, nested, supplied) if supplied else None
    return FindKey(
        pattern=pattern,
        partition_attribute=idx.partition_key,
        partition_value=partition_value,
        sort_attribute=idx.sort_key,
        sort_prefix=sort_prefix,
    )
