from __future__ import annotations

import re
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError

from .codec import decode_record, from_dynamodb_value
from .layout import TYPE_ATTRIBUTE, VALUE_ATTRIBUTE

_deserializer = TypeDeserializer()
_PLACEHOLDER = re.compile(r"[#:][A-Za-z0-9_]+")

# The client calls the library issues.
CLIENT_METHODS = frozenset(
    {
        "put_item",
        "get_item",
        "delete_item",
        "update_item",
        "query",
        "transact_write_items",
        "transact_get_items",
    }
)


def client_error(code: str, message: str = "", *, operation: str = "Op", **extra: Any) -> ClientError:
    """Build a botocore ClientError the way the DynamoDB service reports one."""
    return ClientError({"Error": {"Code": code, "Message": message}, **extra}, operation)


def plain(av: Mapping[str, Any]) -> Any:
    """Deserialise one attribute value into plain Python (ints, floats, dicts)."""
    return from_dynamodb_value(_deserializer.deserialize(dict(av)))


def render_expression(request: Mapping[str, Any], key: str = "ConditionExpression") -> str | None:
    """Return ``request[key]`` with every ``#name`` / ``:value`` placeholder substituted.

    ``#c0.#c1 > :c2`` renders as ``value.age > 21``; strings are quoted with repr.
    """
    expression = request.get(key)
    if expression is None:
        return None
    names = request.get("ExpressionAttributeNames") or {}
    values = request.get("ExpressionAttributeValues") or {}

    def substitute(match: re.Match[str]) -> str:
        token = match.group(0)
        if token.startswith("#"):
            if token not in names:
                raise AssertionError(f"{key}: unbound name placeholder {token}")
            return names[token]
        if token not in values:
            raise AssertionError(f"{key}: unbound value placeholder {token}")
        return repr(plain(values[token]))

    return _PLACEHOLDER.sub(substitute, expression)


@dataclass(frozen=True)
class StoredItem:
    """A stored item split into its key attributes, ``type`` and decoded record."""

    keys: dict[str, Any]
    type: str | None
    record: dict[str, Any]

    @classmethod
    def parse(cls, item: Mapping[str, Any]) -> StoredItem:
        keys = {name: plain(av) for name, av in item.items() if name not in (TYPE_ATTRIBUTE, VALUE_ATTRIBUTE)}
        kind = plain(item[TYPE_ATTRIBUTE]) if TYPE_ATTRIBUTE in item else None
        return cls(keys=keys, type=kind, record=decode_record(item))


@dataclass(frozen=True)
class RecordedCall:
    method: str
    request: dict[str, Any]

    def expression(self, key: str = "ConditionExpression") -> str | None:
        return render_expression(self.request, key)

    def key(self) -> dict[str, Any]:
        return {name: plain(av) for name, av in self.request["Key"].items()}

    def stored(self) -> StoredItem:
        return StoredItem.parse(self.request["Item"])


@dataclass
class _Reply:
    response: Mapping[str, Any] = field(default_factory=dict)
    error: Exception | None = None


class FakeDynamoDBClient:
    """In-process stand-in for the boto3 DynamoDB client.

    Every call is recorded. Replies are scripted per method with ``reply`` /
    ``fail`` and consumed in order; an unscripted call answers ``{}``, the
    shape DynamoDB uses for "nothing found".
    """

    def __init__(self) -> None:
        self._replies: dict[str, deque[_Reply]] = {}
        self.calls: list[RecordedCall] = []

    def reply(self, method: str, response: Mapping[str, Any] | None = None, *, error: Exception | None = None) -> None:
        if method not in CLIENT_METHODS:
            raise ValueError(f"unsupported client method: {method}")
        self._replies.setdefault(method, deque()).append(_Reply(dict(response or {}), error))

    def fail(self, method: str, code: str, message: str = "", **extra: Any) -> None:
        self.reply(method, error=client_error(code, message, operation=method, **extra))

    def calls_to(self, method: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method]

    def only(self, method: str) -> RecordedCall:
        """Return the single call made, asserting it went to ``method``."""
        if len(self.calls) != 1 or self.calls[0].method != method:
            raise AssertionError(f"expected exactly one {method} call, got {[c.method for c in self.calls]}")
        return self.calls[0]

    def assert_replies_used(self) -> None:
        left = {m: len(q) for m, q in self._replies.items() if q}
        if left:
            raise AssertionError(f"scripted replies never used: {left}")

    def _call(self, method: str, request: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(RecordedCall(method, request))
        queue = self._replies.get(method)
        if not queue:
            return {}
        reply = queue.popleft()
        if reply.error is not None:
            raise reply.error
        return dict(reply.response)

    def __getattr__(self, name: str) -> Any:
        if name not in CLIENT_METHODS:
            raise AttributeError(name)

        def call(**kwargs: Any) -> dict[str, Any]:
            return self._call(name, kwargs)

        return call
