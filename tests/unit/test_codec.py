from __future__ import annotations

from decimal import Decimal

import pytest

from singletable_py import ValidationError
from singletable_py.codec import decode_record, encode_item, from_dynamodb_value, serialize, to_dynamodb_value


def test_floats_become_decimals_recursively() -> None:
    out = to_dynamodb_value({"a": 1.5, "b": [2.25, {"c": 0.1}], "d": True, "e": 3})
    assert out == {"a": Decimal("1.5"), "b": [Decimal("2.25"), {"c": Decimal("0.1")}], "d": True, "e": 3}


def test_decimals_decode_to_int_or_float() -> None:
    assert from_dynamodb_value({"a": Decimal("3"), "b": [Decimal("1.5")]}) == {"a": 3, "b": [1.5]}
    assert isinstance(from_dynamodb_value(Decimal("3")), int)


def test_serialize_rejects_unsupported_values() -> None:
    assert serialize(1.25) == {"N": "1.25"}
    with pytest.raises(ValidationError, match="unsupported value"):
        serialize(object())


def test_encode_item_stores_record_under_value_with_type() -> None:
    item = encode_item("users", {"_id": "u1", "age": 30}, {"pk": "u1", "sk": "users"})
    assert item == {
        "pk": {"S": "u1"},
        "sk": {"S": "users"},
        "type": {"S": "users"},
        "value": {"M": {"_id": {"S": "u1"}, "age": {"N": "30"}}},
    }


def test_decode_record_reads_value_map() -> None:
    item = {"pk": {"S": "u1"}, "value": {"M": {"_id": {"S": "u1"}, "score": {"N": "2.5"}, "tags": {"L": []}}}}
    assert decode_record(item) == {"_id": "u1", "score": 2.5, "tags": []}

    with pytest.raises(ValidationError, match="no 'value'"):
        decode_record({"pk": {"S": "u1"}})
    with pytest.raises(ValidationError, match="must be a map"):
        decode_record({"value": {"S": "nope"}})
