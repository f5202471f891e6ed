from __future__ import annotations

import pytest

from singletable_py import (
    AwsError,
    FindByIdDescriptor,
    InvalidFindDescriptorError,
    TransactDelete,
    TransactionCanceledError,
    TransactionConflictError,
    TransactionSizeError,
    TransactReplace,
    transact_find_by_ids,
    transact_write,
)
from singletable_py.context import Context
from singletable_py.mocks import FakeDynamoDBClient, StoredItem, client_error, render_expression
from singletable_py.observability import RecordingSink

JANE = {
    "_id": "u1",
    "email": "jane@example.com",
    "department": "eng",
    "lastName": "Doe",
    "firstName": "Jane",
}


def _canceled(*codes: str) -> Exception:
    return client_error(
        "TransactionCanceledException",
        f"Transaction cancelled, please refer cancellation reasons for specific reasons [{', '.join(codes)}]",
        operation="TransactWriteItems",
        CancellationReasons=[{"Code": code} for code in codes],
    )


def test_requests_carry_a_kind_discriminant() -> None:
    assert TransactReplace("users", JANE).kind == "replace"
    assert TransactDelete("users", "u1").kind == "delete"
    with pytest.raises(TypeError):
        TransactDelete("users", "u1", None, "replace")  # type: ignore[call-arg]


def test_transact_write_builds_put_and_delete_entries_in_order(
    ctx: Context, fake_client: FakeDynamoDBClient
) -> None:
    requests = [
        TransactReplace("users", JANE, condition={"email": "jane@example.com"}),
        TransactDelete("orders", "o1"),
    ]
    transact_write(ctx, requests)

    put_entry, delete_entry = fake_client.only("transact_write_items").request["TransactItems"]
    put = put_entry["Put"]
    assert put["TableName"] == "app"
    assert render_expression(put) == "value.email = 'jane@example.com'"
    stored = StoredItem.parse(put["Item"])
    assert stored.type == "users"
    assert stored.record == JANE
    assert stored.keys["gsi2sk"] == "Doe|-|Jane"

    delete = delete_entry["Delete"]
    assert delete == {"TableName": "app", "Key": {"pk": {"S": "o1"}, "sk": {"S": "orders"}}}
    assert len(requests) == 2


def test_transact_write_accepts_exactly_25_entries(ctx: Context, fake_client: FakeDynamoDBClient) -> None:
    transact_write(ctx, [TransactDelete("users", f"u{i}") for i in range(25)])
    assert len(fake_client.only("transact_write_items").request["TransactItems"]) == 25


def test_transact_write_rejects_26_entries_before_any_network_call(
    ctx: Context, fake_client: FakeDynamoDBClient
) -> None:
    with pytest.raises(TransactionSizeError, match="at most 25") as exc:
        transact_write(ctx, [TransactDelete("users", f"u{i}") for i in range(26)])
    assert exc.value.size == 26
    assert isinstance(exc.value, InvalidFindDescriptorError)
    assert fake_client.calls == []


def test_transact_write_rejects_empty_batch(ctx: Context, fake_client: FakeDynamoDBClient) -> None:
    with pytest.raises(TransactionSizeError, match="at least one"):
        transact_write(ctx, [])
    assert fake_client.calls == []


def test_transact_write_rejects_unknown_request_types_before_reporting_progress(
    ctx: Context, fake_client: FakeDynamoDBClient, sink: RecordingSink
) -> None:
    with pytest.raises(InvalidFindDescriptorError, match="unsupported transaction request: dict"):
        transact_write(ctx, [TransactDelete("users", "u1"), {"collection": "users", "id": "u2"}])  # type: ignore[list-item]
    assert fake_client.calls == []
    assert sink.events == []


def test_conflict_names_failing_item(ctx: Context, fake_client: FakeDynamoDBClient) -> None:
    fake_client.reply("transact_write_items", error=_canceled("None", "ConditionalCheckFailed", "None"))

    with pytest.raises(TransactionConflictError, match="orders/o2") as exc:
        transact_write(
            ctx,
            [
                TransactDelete("orders", "o1"),
                TransactDelete("orders", "o2", condition={"status": "open"}),
                TransactReplace("users", JANE),
            ],
        )
    assert exc.value.collection_name == "orders"
    assert exc.value.id == "o2"
    assert exc.value.reason_codes == ("None", "ConditionalCheckFailed", "None")

    guarded = fake_client.only("transact_write_items").request["TransactItems"][1]["Delete"]
    assert render_expression(guarded) == "value.status = 'open'"


def test_conflict_reason_transaction_conflict(ctx: Context, fake_client: FakeDynamoDBClient) -> None:
    fake_client.reply("transact_write_items", error=_canceled("TransactionConflict"))
    with pytest.raises(TransactionConflictError) as exc:
        transact_write(ctx, [TransactReplace("users", JANE)])
    assert exc.value.id == "u1"


def test_other_cancellations_and_errors(ctx: Context, fake_client: FakeDynamoDBClient) -> None:
    fake_client.reply("transact_write_items", error=_canceled("ThrottlingError"))
    fake_client.fail("transact_write_items", "InternalServerError", "boom")

    with pytest.raises(TransactionCanceledError) as exc:
        transact_write(ctx, [TransactDelete("users", "u1")])
    assert not isinstance(exc.value, TransactionConflictError)

    with pytest.raises(AwsError):
        transact_write(ctx, [TransactDelete("users", "u1")])
    fake_client.assert_replies_used()


def test_transact_write_reports_phases(ctx: Context, fake_client: FakeDynamoDBClient, sink: RecordingSink) -> None:
    fake_client.reply("transact_write_items")
    fake_client.reply("transact_write_items", error=_canceled("ConditionalCheckFailed"))

    transact_write(ctx, [TransactDelete("users", "u1")])
    assert sink.phases("transact_write") == ["validated", "built", "submitted", "committed"]

    sink.events.clear()
    with pytest.raises(TransactionConflictError):
        transact_write(ctx, [TransactDelete("users", "u1")])
    assert sink.phases("transact_write") == ["validated", "built", "submitted", "aborted"]
    assert sink.events[-1].ok is False
    assert sink.events[-1].detail["error"] == "TransactionConflictError"


def test_transact_find_by_ids_preserves_order_and_marks_missing(
    ctx: Context, fake_client: FakeDynamoDBClient
) -> None:
    fake_client.reply(
        "transact_get_items",
        {"Responses": [{}, {"Item": {"value": {"M": {"_id": {"S": "o1"}, "total": {"N": "9.5"}}}}}]},
    )

    out = transact_find_by_ids(
        ctx,
        [FindByIdDescriptor("users", "missing"), {"id": "o1", "collection": "orders"}],
    )
    assert out == [None, {"_id": "o1", "total": 9.5}]
    assert fake_client.only("transact_get_items").request["TransactItems"] == [
        {"Get": {"TableName": "app", "Key": {"pk": {"S": "missing"}, "sk": {"S": "users"}}}},
        {"Get": {"TableName": "app", "Key": {"pk": {"S": "o1"}, "sk": {"S": "orders"}}}},
    ]


@pytest.mark.parametrize(
    "descriptors",
    [
        None,
        [],
        [FindByIdDescriptor("users", f"u{i}") for i in range(26)],
        [{"id": "u1"}],
        [{"collection": "users", "id": 7}],
    ],
)
def test_transact_find_by_ids_rejects_invalid_descriptors(
    ctx: Context, fake_client: FakeDynamoDBClient, descriptors: list | None
) -> None:
    with pytest.raises(InvalidFindDescriptorError):
        transact_find_by_ids(ctx, descriptors)  # type: ignore[arg-type]
    assert fake_client.calls == []
