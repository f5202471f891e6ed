from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .codec import decode_record, encode_item, serialize_values
from .collection import ID_FIELD, Collection, KeyPath
from .conditions import Condition, CompositeCondition, ExpressionBuilder, Exists, as_condition
from .context import Context
from .cursor import Page, decode_cursor, encode_cursor
from .errors import (
    ConditionFailedError,
    ConfigurationError,
    DuplicateKeyError,
    InvalidUpdateError,
    ValidationError,
)
from .keys import access_pattern_values, derive_keys, has_path, key_for_id, resolve_find_key
from .layout import VALUE_ATTRIBUTE
from .observability import observe
from .validation import NameValidationError, parse_field_path

type ConditionInput = Condition | CompositeCondition


def new_id() -> str:
    return uuid.uuid4().hex


def prepare_record(value: Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(f"record must be a mapping (got {type(value).__name__})")
    record = dict(value)
    if record.get(ID_FIELD) is None:
        record[ID_FIELD] = new_id()
    return record


def _apply_condition(req: dict[str, Any], builder: ExpressionBuilder, parts: list[str]) -> None:
    if not parts:
        return
    req["ConditionExpression"] = " AND ".join(parts)
    if builder.names:
        req["ExpressionAttributeNames"] = dict(builder.names)
    if builder.values:
        req["ExpressionAttributeValues"] = serialize_values(builder.values)


def create_put_request(
    collection: Collection,
    record: Mapping[str, Any],
    *,
    condition: ConditionInput | None = None,
    must_not_exist: bool = False,
) -> dict[str, Any]:
    """Lower a record into a single PutItem request (also used inside transactions)."""
    keys = derive_keys(collection, record)
    req: dict[str, Any] = {
        "TableName": collection.layout.table_name,
        "Item": encode_item(collection.name, record, keys),
    }

    builder = ExpressionBuilder()
    parts: list[str] = []
    if must_not_exist:
        parts.append(builder.lower(Exists((collection.layout.primary_key.partition_key,), False)))
    if condition is not None:
        parts.append(builder.lower(as_condition(condition), path_prefix=(VALUE_ATTRIBUTE,)))
    _apply_condition(req, builder, parts)
    return req


def create_delete_request(
    collection: Collection,
    id: str,
    *,
    condition: ConditionInput | None = None,
) -> dict[str, Any]:
    req: dict[str, Any] = {"TableName": collection.layout.table_name, "Key": key_for_id(collection, id)}
    if condition is not None:
        builder = ExpressionBuilder()
        _apply_condition(req, builder, [builder.lower(as_condition(condition), path_prefix=(VALUE_ATTRIBUTE,))])
    return req


def insert(ctx: Context, collection_name: str, value: Mapping[str, Any]) -> dict[str, Any]:
    """Store a new record, failing with DuplicateKeyError if its ``_id`` exists."""
    collection = ctx.get_collection(collection_name)
    record = prepare_record(value)
    req = create_put_request(collection, record, must_not_exist=True)

    with observe(
        ctx.sink, "insert", collection=collection.name, table=req["TableName"], detail={"id": record[ID_FIELD]}
    ):
        try:
            ctx.client.put_item(**req)
        except ClientError as err:
            mapped = map_client_error(err)
            if isinstance(mapped, ConditionFailedError):
                raise DuplicateKeyError(collection_name=collection.name, id=record[ID_FIELD]) from err
            raise mapped from err
    return record


def replace(
    ctx: Context,
    collection_name: str,
    value: Mapping[str, Any],
    *,
    condition: ConditionInput | None = None,
) -> dict[str, Any]:
    collection = ctx.get_collection(collection_name)
    record = prepare_record(value)
    req = create_put_request(collection, record, condition=condition)

    with observe(
        ctx.sink, "replace", collection=collection.name, table=req["TableName"], detail={"id": record[ID_FIELD]}
    ):
        try:
            ctx.client.put_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err
    return record


def find_by_id(
    ctx: Context, collection_name: str, id: str, *, consistent_read: bool = False
) -> dict[str, Any] | None:
    collection = ctx.get_collection(collection_name)
    table_name = collection.layout.table_name
    key = key_for_id(collection, id)

    with observe(ctx.sink, "find_by_id", collection=collection.name, table=table_name, detail={"id": id}) as extra:
        try:
            resp = ctx.client.get_item(TableName=table_name, Key=key, ConsistentRead=consistent_read)
        except ClientError as err:
            raise map_client_error(err) from err
        item = resp.get("Item")
        extra["found"] = bool(item)

    if not item:
        return None
    return decode_record(item)


def delete_by_id(
    ctx: Context,
    collection_name: str,
    id: str,
    *,
    condition: ConditionInput | None = None,
) -> dict[str, Any] | None:
    """Delete a record and return its previous value, or None if it did not exist."""
    collection = ctx.get_collection(collection_name)
    req = create_delete_request(collection, id, condition=condition)
    req["ReturnValues"] = "ALL_OLD"

    with observe(ctx.sink, "delete_by_id", collection=collection.name, table=req["TableName"], detail={"id": id}):
        try:
            resp = ctx.client.delete_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

    attrs = resp.get("Attributes")
    if not attrs:
        return None
    return decode_record(attrs)


def _update_paths(collection: Collection, updates: Mapping[str, Any]) -> list[tuple[KeyPath, Any]]:
    out: list[tuple[KeyPath, Any]] = []
    for raw_path, value in updates.items():
        try:
            path = parse_field_path(raw_path)
        except NameValidationError as err:
            raise InvalidUpdateError(str(err)) from err
        if path[0] == ID_FIELD:
            raise InvalidUpdateError(f"{collection.name}: {ID_FIELD} cannot be updated")
        out.append((path, value))

    for i, (a, _) in enumerate(out):
        for b, _ in out[i + 1 :]:
            shorter = min(len(a), len(b))
            if a[:shorter] == b[:shorter]:
                raise InvalidUpdateError(f"{collection.name}: overlapping update paths {'.'.join(a)} and {'.'.join(b)}")
    return out


def _nested(paths: list[tuple[KeyPath, Any]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for path, value in paths:
        node = out
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value
    return out


def _touches(update_path: KeyPath, key_path: KeyPath) -> bool:
    shorter = min(len(update_path), len(key_path))
    return update_path[:shorter] == key_path[:shorter]


def create_update_request(
    collection: Collection,
    id: str,
    updates: Mapping[str, Any],
    *,
    condition: ConditionInput | None = None,
) -> dict[str, Any]:
    paths = _update_paths(collection, updates)
    if not paths:
        raise InvalidUpdateError(f"{collection.name}: no updates provided")

    builder = ExpressionBuilder()
    set_parts: list[str] = []
    remove_parts: list[str] = []
    for path, value in paths:
        name = builder.name_ref((VALUE_ATTRIBUTE, *path))
        if value is None:
            remove_parts.append(name)
        else:
            set_parts.append(f"{name} = {builder.value_ref(value)}")

    # Any access pattern touched by the update is re-derived, which needs all of its fields.
    updated = _nested(paths)
    for pattern in collection.access_patterns:
        if not any(_touches(u, k) for u, _ in paths for k in pattern.key_paths):
            continue
        missing = [k for k in pattern.key_paths if not has_path(updated, k)]
        if missing:
            fields = sorted(".".join(k) for k in missing)
            raise InvalidUpdateError(
                f"{collection.name}: updating {pattern.index_name} key fields requires all of them (missing {fields})"
            )
        for attribute, key_value in access_pattern_values(collection, pattern, updated).items():
            set_parts.append(f"{builder.name_ref((attribute,))} = {builder.value_ref(key_value)}")

    expr_parts: list[str] = []
    if set_parts:
        expr_parts.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expr_parts.append("REMOVE " + ", ".join(remove_parts))

    guard = [builder.lower(Exists((collection.layout.primary_key.partition_key,), True))]
    if condition is not None:
        guard.append(builder.lower(as_condition(condition), path_prefix=(VALUE_ATTRIBUTE,)))

    req: dict[str, Any] = {
        "TableName": collection.layout.table_name,
        "Key": key_for_id(collection, id),
        "UpdateExpression": " ".join(expr_parts),
    }
    _apply_condition(req, builder, guard)
    return req


def update_by_id(
    ctx: Context,
    collection_name: str,
    id: str,
    updates: Mapping[str, Any],
    *,
    condition: ConditionInput | None = None,
) -> dict[str, Any]:
    """Set (or, for ``None`` values, remove) record paths of an existing record.

    Fails with ConditionFailedError when the record does not exist or the
    condition does not hold.
    """
    collection = ctx.get_collection(collection_name)
    req = create_update_request(collection, id, updates, condition=condition)
    req["ReturnValues"] = "ALL_NEW"

    with observe(ctx.sink, "update_by_id", collection=collection.name, table=req["TableName"], detail={"id": id}):
        try:
            resp = ctx.client.update_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

    attrs = resp.get("Attributes")
    if not attrs:
        raise ValidationError("update did not return Attributes")
    return decode_record(attrs)


def _query_page(
    ctx: Context,
    collection: Collection,
    operation: str,
    *,
    index_name: str,
    builder: ExpressionBuilder,
    key_expression: str,
    filter: ConditionInput | None,
    limit: int | None,
    cursor: str | None,
    scan_forward: bool,
) -> Page[dict[str, Any]]:
    if limit is not None and limit <= 0:
        raise ValidationError("limit must be > 0")

    sort = "ASC" if scan_forward else "DESC"
    req: dict[str, Any] = {
        "TableName": collection.layout.table_name,
        "IndexName": index_name,
        "KeyConditionExpression": key_expression,
        "ScanIndexForward": scan_forward,
    }
    if filter is not None:
        req["FilterExpression"] = builder.lower(as_condition(filter), path_prefix=(VALUE_ATTRIBUTE,))
    req["ExpressionAttributeNames"] = dict(builder.names)
    req["ExpressionAttributeValues"] = serialize_values(builder.values)
    if limit is not None:
        req["Limit"] = limit
    if cursor is not None:
        try:
            decoded = decode_cursor(cursor)
        except ValueError as err:
            raise ValidationError("invalid cursor") from err
        if decoded.index is not None and decoded.index != index_name:
            raise ValidationError("cursor index does not match query")
        if decoded.sort is not None and decoded.sort != sort:
            raise ValidationError("cursor sort does not match query")
        req["ExclusiveStartKey"] = decoded.last_key

    with observe(ctx.sink, operation, collection=collection.name, table=req["TableName"], detail={"index": index_name}) as extra:
        try:
            resp = ctx.client.query(**req)
        except ClientError as err:
            raise map_client_error(err) from err
        items = [decode_record(item) for item in resp.get("Items", [])]
        extra["count"] = len(items)

    last = resp.get("LastEvaluatedKey")
    return Page(items=items, next_cursor=encode_cursor(last, index=index_name, sort=sort) if last else None)


def find(
    ctx: Context,
    collection_name: str,
    query: Mapping[str, Any],
    *,
    filter: ConditionInput | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    scan_forward: bool = True,
) -> Page[dict[str, Any]]:
    """Query the access pattern matching ``query``.

    Partition fields must match exactly; supplied sort fields (a leading run
    of the pattern's sort fields) are matched as a prefix.
    """
    collection = ctx.get_collection(collection_name)
    find_key = resolve_find_key(collection, query)

    builder = ExpressionBuilder()
    key_expression = f"{builder.name_ref((find_key.partition_attribute,))} = {builder.value_ref(find_key.partition_value)}"
    if find_key.sort_prefix is not None and find_key.sort_attribute is not None:
        key_expression += (
            f" AND begins_with({builder.name_ref((find_key.sort_attribute,))}, {builder.value_ref(find_key.sort_prefix)})"
        )

    return _query_page(
        ctx,
        collection,
        "find",
        index_name=find_key.pattern.index_name,
        builder=builder,
        key_expression=key_expression,
        filter=filter,
        limit=limit,
        cursor=cursor,
        scan_forward=scan_forward,
    )


def list_all(
    ctx: Context,
    collection_name: str,
    *,
    filter: ConditionInput | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    scan_forward: bool = True,
) -> Page[dict[str, Any]]:
    collection = ctx.get_collection(collection_name)
    list_all_key = collection.layout.list_all_key
    if list_all_key is None:
        raise ConfigurationError(f"{collection.layout.table_name}: layout has no list_all_key")

    builder = ExpressionBuilder()
    key_expression = f"{builder.name_ref((list_all_key.partition_key,))} = {builder.value_ref(collection.name)}"
    return _query_page(
        ctx,
        collection,
        "list_all",
        index_name=list_all_key.index_name,
        builder=builder,
        key_expression=key_expression,
        filter=filter,
        limit=limit,
        cursor=cursor,
        scan_forward=scan_forward,
    )


def find_all(
    ctx: Context,
    collection_name: str,
    query: Mapping[str, Any],
    *,
    filter: ConditionInput | None = None,
    page_size: int | None = None,
    scan_forward: bool = True,
) -> Iterator[dict[str, Any]]:
    cursor: str | None = None
    while True:
        page = find(
            ctx, collection_name, query, filter=filter, limit=page_size, cursor=cursor, scan_forward=scan_forward
        )
        yield from page.items
        if page.next_cursor is None:
            return
        cursor = page.next_cursor


def list_all_items(
    ctx: Context,
    collection_name: str,
    *,
    filter: ConditionInput | None = None,
    page_size: int | None = None,
    scan_forward: bool = True,
) -> Iterator[dict[str, Any]]:
    cursor: str | None = None
    while True:
        page = list_all(
            ctx, collection_name, filter=filter, limit=page_size, cursor=cursor, scan_forward=scan_forward
        )
        yield from page.items
        if page.next_cursor is None:
            return
        cursor = page.next_cursor
