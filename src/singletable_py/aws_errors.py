from __future__ import annotations

from collections.abc import Sequence

from botocore.exceptions import ClientError

from .errors import (
    AwsError,
    ConditionFailedError,
    NotFoundError,
    TransactionCanceledError,
    TransactionConflictError,
    ValidationError,
)

_CONFLICT_REASONS = frozenset({"ConditionalCheckFailed", "TransactionConflict"})


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def map_client_error(err: ClientError) -> Exception:
    code = error_code(err)
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message or "conditional check failed")
    if code == "ValidationException":
        return ValidationError(message)
    if code == "ResourceNotFoundException":
        return NotFoundError(message)

    return AwsError(code=code or "UnknownError", message=message or str(err))


def map_transaction_error(err: ClientError, *, items: Sequence[tuple[str, str]] = ()) -> Exception:
    """Map a transactional ClientError.

    ``items`` holds the ``(collection_name, id)`` of every entry in request
    order so a cancellation can name the entry that caused it.
    """
    code = error_code(err)
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code != "TransactionCanceledException":
        return map_client_error(err)

    reasons_raw = err.response.get("CancellationReasons") or []
    reason_codes = tuple(
        str(reason.get("Code") or "None") if isinstance(reason, dict) else "None" for reason in reasons_raw
    )

    failing = next((i for i, rc in enumerate(reason_codes) if rc in _CONFLICT_REASONS), None)
    if failing is None and "ConditionalCheckFailed" in message:
        failing = -1

    if failing is None:
        return TransactionCanceledError(message=message or "transaction canceled", reason_codes=reason_codes)

    collection_name: str | None = None
    item_id: str | None = None
    if 0 <= failing < len(items):
        collection_name, item_id = items[failing]
        message = f"transaction aborted by {collection_name}/{item_id}: {message or reason_codes[failing]}"

    return TransactionConflictError(
        message=message or "transaction canceled: ConditionalCheckFailed",
        reason_codes=reason_codes,
        collection_name=collection_name,
        id=item_id,
    )
