from __future__ import annotations

import logging
import os
import uuid

import boto3

from singletable_py import (
    Collection,
    TransactDelete,
    TransactReplace,
    access_pattern,
    create_context,
    find,
    find_by_id,
    index,
    insert,
    layout,
    list_all,
    transact_find_by_ids,
    transact_write,
)


def _client():
    return boto3.client(
        "dynamodb",
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        region_name=os.environ.get("AWS_REGION", "us-east-1"),
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
    )


def _create_table(client, table_name: str) -> None:
    keys = [("gsi0", "sk", "pk"), ("gsi1", "gsi1pk", "gsi1sk")]
    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": name, "AttributeType": "S"} for name in ("pk", "sk", "gsi1pk", "gsi1sk")
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": name,
                "KeySchema": [
                    {"AttributeName": partition, "KeyType": "HASH"},
                    {"AttributeName": sort, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
            for name, partition, sort in keys
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)


def main() -> None:
    logging.basicConfig(level=logging.DEBUG if os.environ.get("DEBUG") else logging.INFO)

    client = _client()
    table_name = f"singletable_py_example_{uuid.uuid4().hex[:12]}"
    _create_table(client, table_name)

    try:
        app = layout(
            table_name,
            partition_key="pk",
            sort_key="sk",
            find_keys=[index("gsi1", partition="gsi1pk", sort="gsi1sk")],
            list_all_key=index("gsi0", partition="sk", sort="pk"),
        )
        # Both collections bind gsi1.
        users = Collection("users", app, (access_pattern("gsi1", sort=["email"]),))
        orders = Collection("orders", app, (access_pattern("gsi1", partition=["userId"], sort=["createdAt"]),))
        ctx = create_context(client, [users, orders])

        jane = insert(ctx, "users", {"name": "Jane", "email": "jane@example.com"})
        print("find_by_id:", find_by_id(ctx, "users", jane["_id"]))
        print("find by email:", find(ctx, "users", {"email": "jane@"}).items)

        transact_write(
            ctx,
            [
                TransactReplace("orders", {"_id": "o1", "userId": jane["_id"], "createdAt": "2024-01-01"}),
                TransactReplace("orders", {"_id": "o2", "userId": jane["_id"], "createdAt": "2024-02-01"}),
            ],
        )
        print("orders in 2024-02:", find(ctx, "orders", {"userId": jane["_id"], "createdAt": "2024-02"}).items)
        print("all users:", list_all(ctx, "users").items)

        transact_write(ctx, [TransactDelete("orders", "o1")])
        print("multi-get:", transact_find_by_ids(ctx, [{"collection": "orders", "id": i} for i in ("o1", "o2")]))
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
