from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Page[T]:
    items: list[T]
    next_cursor: str | None


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, Any]
    index: str | None = None
    sort: str | None = None


_SCALAR_KINDS = {"S", "N"}


def _single(value: Any) -> tuple[str, Any]:
    if not isinstance(value, dict) or len(value) != 1:
        raise ValueError("attribute value must be a single-key map")
    ((kind, inner),) = value.items()
    return str(kind), inner


def _av_to_json(av: Any) -> dict[str, Any]:
    kind, value = _single(av)
    if kind in _SCALAR_KINDS:
        if not isinstance(value, str):
            raise ValueError(f"{kind} value must be a string")
        return {kind: value}
    if kind == "B":
        if not isinstance(value, (bytes, bytearray)):
            raise ValueError("B value must be bytes")
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    raise ValueError(f"unsupported key attribute type: {kind}")


def _av_from_json(enc: Any) -> dict[str, Any]:
    kind, value = _single(enc)
    if not isinstance(value, str):
        raise ValueError(f"{kind} value must be a string")
    if kind in _SCALAR_KINDS:
        return {kind: value}
    if kind == "B":
        return {"B": base64.b64decode(value)}
    raise ValueError(f"unsupported key attribute type: {kind}")


def encode_cursor(last_key: Any, *, index: str | None = None, sort: str | None = None) -> str:
    """Encode a ``LastEvaluatedKey`` as an opaque url-safe token.

    Key attributes are always scalars (S, N or B), so only those are accepted.
    """
    if not last_key:
        return ""
    if not isinstance(last_key, dict):
        raise ValueError("last_key must be a map")

    payload: dict[str, Any] = {"lastKey": {str(k): _av_to_json(last_key[k]) for k in sorted(last_key)}}
    if index is not None:
        payload["index"] = index
    if sort is not None:
        payload["sort"] = sort

    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Cursor:
    raw = str(cursor or "").strip()
    if not raw:
        raise ValueError("cursor is empty")

    padding = "=" * (-len(raw) % 4)
    parsed = json.loads(base64.urlsafe_b64decode(raw + padding).decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("cursor must decode to an object")

    last_key_raw = parsed.get("lastKey")
    if not isinstance(last_key_raw, dict) or not last_key_raw:
        raise ValueError("cursor lastKey is invalid")

    index = parsed.get("index")
    sort = parsed.get("sort")
    return Cursor(
        last_key={str(k): _av_from_json(v) for k, v in last_key_raw.items()},
        index=index if isinstance(index, str) else None,
        sort=sort if sort in {"ASC", "DESC"} else None,
    )
