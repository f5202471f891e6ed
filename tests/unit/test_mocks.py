from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from singletable_py.codec import encode_item
from singletable_py.mocks import FakeDynamoDBClient, StoredItem, render_expression


def test_unscripted_calls_are_recorded_and_answer_empty() -> None:
    client = FakeDynamoDBClient()

    assert client.get_item(TableName="app", Key={"pk": {"S": "u1"}}) == {}
    call = client.only("get_item")
    assert call.key() == {"pk": "u1"}
    assert call.request["TableName"] == "app"

    with pytest.raises(AttributeError):
        client.scan  # noqa: B018


def test_replies_are_consumed_per_method_in_order() -> None:
    client = FakeDynamoDBClient()
    client.reply("query", {"Items": [], "Count": 0})
    client.fail("query", "ValidationException", "bad key")

    assert client.query(TableName="app") == {"Items": [], "Count": 0}
    with pytest.raises(ClientError) as exc:
        client.query(TableName="app")
    assert exc.value.response["Error"] == {"Code": "ValidationException", "Message": "bad key"}
    assert exc.value.operation_name == "query"

    client.assert_replies_used()
    assert [c.method for c in client.calls_to("query")] == ["query", "query"]
    with pytest.raises(AssertionError, match="exactly one query"):
        client.only("query")


def test_unused_replies_and_unsupported_methods_are_reported() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValueError, match="unsupported client method"):
        client.reply("scan")

    client.reply("delete_item")
    with pytest.raises(AssertionError, match="delete_item"):
        client.assert_replies_used()


def test_render_expression_substitutes_placeholders() -> None:
    request = {
        "ConditionExpression": "#c0.#c1 > :c2 AND begins_with(#c0.#c3, :c4)",
        "ExpressionAttributeNames": {"#c0": "value", "#c1": "age", "#c3": "name"},
        "ExpressionAttributeValues": {":c2": {"N": "21"}, ":c4": {"S": "Jo"}},
    }
    assert render_expression(request) == "value.age > 21 AND begins_with(value.name, 'Jo')"
    assert render_expression(request, "FilterExpression") is None

    with pytest.raises(AssertionError, match="unbound value placeholder :c9"):
        render_expression({"ConditionExpression": "#a = :c9", "ExpressionAttributeNames": {"#a": "x"}})


def test_stored_item_splits_keys_type_and_record() -> None:
    item = encode_item("users", {"_id": "u1", "age": 30, "tags": ["a"]}, {"pk": "u1", "sk": "users"})
    stored = StoredItem.parse(item)

    assert stored.keys == {"pk": "u1", "sk": "users"}
    assert stored.type == "users"
    assert stored.record == {"_id": "u1", "age": 30, "tags": ["a"]}
