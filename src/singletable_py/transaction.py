from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from botocore.exceptions import ClientError

from .aws_errors import map_client_error, map_transaction_error
from .codec import decode_record
from .collection import ID_FIELD
from .conditions import Condition, CompositeCondition
from .context import Context
from .errors import InvalidFindDescriptorError, TransactionSizeError
from .keys import key_for_id, record_id
from .observability import OperationEvent
from .operations import create_delete_request, create_put_request, prepare_record

MaxTransactionItems = 25


@dataclass(frozen=True)
class TransactReplace:
    collection_name: str
    value: Mapping[str, Any]
    condition: Condition | CompositeCondition | None = None
    kind: Literal["replace"] = field(default="replace", init=False)


@dataclass(frozen=True)
class TransactDelete:
    collection_name: str
    id: str
    condition: Condition | CompositeCondition | None = None
    kind: Literal["delete"] = field(default="delete", init=False)


type TransactWriteRequest = TransactReplace | TransactDelete


@dataclass(frozen=True)
class FindByIdDescriptor:
    collection_name: str
    id: str


class _Phases:
    def __init__(self, ctx: Context, operation: str, size: int) -> None:
        self._ctx = ctx
        self._operation = operation
        self._size = size
        self._start = time.monotonic()

    def emit(self, phase: str, *, ok: bool = True, **detail: Any) -> None:
        self._ctx.sink(
            OperationEvent(
                operation=self._operation,
                collection=None,
                table=None,
                phase=phase,
                ok=ok,
                seconds=time.monotonic() - self._start,
                detail={"size": self._size, **detail},
            )
        )


def _check_size(requests: Sequence[Any], what: str) -> None:
    if not requests:
        raise TransactionSizeError(f"{what} requires at least one entry", size=0)
    if len(requests) > MaxTransactionItems:
        raise TransactionSizeError(
            f"{what} supports at most {MaxTransactionItems} entries (got {len(requests)})", size=len(requests)
        )


def _build_write(ctx: Context, request: TransactWriteRequest) -> tuple[dict[str, Any], tuple[str, str]]:
    if isinstance(request, TransactReplace):
        collection = ctx.get_collection(request.collection_name)
        record = prepare_record(request.value)
        put = create_put_request(collection, record, condition=request.condition)
        return {"Put": put}, (collection.name, record_id(collection, record))

    if isinstance(request, TransactDelete):
        collection = ctx.get_collection(request.collection_name)
        delete = create_delete_request(collection, request.id, condition=request.condition)
        return {"Delete": delete}, (collection.name, request.id)

    raise InvalidFindDescriptorError(f"unsupported transaction request: {type(request).__name__}")


def transact_write(ctx: Context, requests: Sequence[TransactWriteRequest]) -> None:
    """Apply every request atomically, or none of them.

    A failing guard aborts the whole batch with TransactionConflictError naming
    the entry responsible. Nothing is retried.
    """
    _check_size(requests, "transact_write")
    for request in requests:
        if not isinstance(request, (TransactReplace, TransactDelete)):
            raise InvalidFindDescriptorError(f"unsupported transaction request: {type(request).__name__}")
    phases = _Phases(ctx, "transact_write", len(requests))
    phases.emit("validated")

    transact_items: list[dict[str, Any]] = []
    owners: list[tuple[str, str]] = []
    for request in requests:
        item, owner = _build_write(ctx, request)
        transact_items.append(item)
        owners.append(owner)
    phases.emit("built")

    phases.emit("submitted")
    try:
        ctx.client.transact_write_items(TransactItems=transact_items)
    except ClientError as err:
        mapped = map_transaction_error(err, items=owners)
        phases.emit("aborted", ok=False, error=type(mapped).__name__)
        raise mapped from err
    phases.emit("committed")


def _descriptor(entry: FindByIdDescriptor | Mapping[str, Any]) -> FindByIdDescriptor:
    if isinstance(entry, FindByIdDescriptor):
        return entry
    if isinstance(entry, Mapping):
        collection_name = entry.get("collection") or entry.get("collection_name")
        item_id = entry.get("id", entry.get(ID_FIELD))
        if isinstance(collection_name, str) and isinstance(item_id, str):
            return FindByIdDescriptor(collection_name=collection_name, id=item_id)
    raise InvalidFindDescriptorError(f"invalid find-by-id descriptor: {entry!r}")


def transact_find_by_ids(
    ctx: Context, descriptors: Sequence[FindByIdDescriptor | Mapping[str, Any]]
) -> list[dict[str, Any] | None]:
    """Read several records in one consistent snapshot, in request order."""
    size = len(descriptors) if descriptors is not None else 0
    if not 1 <= size <= MaxTransactionItems:
        raise InvalidFindDescriptorError(
            f"transact_find_by_ids requires 1..{MaxTransactionItems} descriptors (got {size})"
        )

    transact_items: list[dict[str, Any]] = []
    for entry in descriptors:
        desc = _descriptor(entry)
        collection = ctx.get_collection(desc.collection_name)
        transact_items.append(
            {"Get": {"TableName": collection.layout.table_name, "Key": key_for_id(collection, desc.id)}}
        )

    phases = _Phases(ctx, "transact_find_by_ids", len(descriptors))
    try:
        resp = ctx.client.transact_get_items(TransactItems=transact_items)
    except ClientError as err:
        mapped = map_client_error(err)
        phases.emit("failed", ok=False, error=type(mapped).__name__)
        raise mapped from err

    responses = resp.get("Responses") or []
    out: list[dict[str, Any] | None] = []
    for i in range(len(transact_items)):
        item = responses[i].get("Item") if i < len(responses) else None
        out.append(decode_record(item) if item else None)
    phases.emit("completed", found=sum(1 for r in out if r is not None))
    return out
