from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import ValidationError
from .layout import TYPE_ATTRIBUTE, VALUE_ATTRIBUTE

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def to_dynamodb_value(value: Any) -> Any:
    """Replace floats with Decimal so TypeSerializer accepts them."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: to_dynamodb_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamodb_value(v) for v in value]
    if isinstance(value, set) and any(isinstance(v, float) for v in value):
        return {to_dynamodb_value(v) for v in value}
    return value


def from_dynamodb_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamodb_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamodb_value(v) for v in value]
    if isinstance(value, set):
        return {from_dynamodb_value(v) for v in value}
    return value


def serialize(value: Any) -> dict[str, Any]:
    try:
        return _serializer.serialize(to_dynamodb_value(value))
    except TypeError as err:
        raise ValidationError(f"unsupported value: {err}") from err


def serialize_values(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: serialize(v) for k, v in values.items()}


def encode_item(collection_name: str, record: Mapping[str, Any], keys: Mapping[str, str]) -> dict[str, Any]:
    """Build the single stored item: key attributes, ``type`` and ``value``."""
    item: dict[str, Any] = {name: serialize(value) for name, value in keys.items()}
    item[TYPE_ATTRIBUTE] = serialize(collection_name)
    item[VALUE_ATTRIBUTE] = serialize(dict(record))
    return item


def decode_record(item: Mapping[str, Any]) -> dict[str, Any]:
    raw = item.get(VALUE_ATTRIBUTE)
    if raw is None:
        raise ValidationError(f"stored item has no {VALUE_ATTRIBUTE!r} attribute")
    value = _deserializer.deserialize(raw)
    if not isinstance(value, dict):
        raise ValidationError(f"stored {VALUE_ATTRIBUTE!r} attribute must be a map")
    return from_dynamodb_value(value)
