from __future__ import annotations

from collections.abc import Iterator

import boto3
import pytest
from moto import mock_aws

from singletable_py import Collection, access_pattern, create_context, index, layout, null_sink
from singletable_py.context import Context

TABLE = "singletable_it"


def _create_table(client) -> None:
    def gsi(name: str, partition: str, sort: str) -> dict:
        return {
            "IndexName": name,
            "KeySchema": [
                {"AttributeName": partition, "KeyType": "HASH"},
                {"AttributeName": sort, "KeyType": "RANGE"},
            ],
            "Projection": {"ProjectionType": "ALL"},
        }

    client.create_table(
        TableName=TABLE,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": name, "AttributeType": "S"}
            for name in ("pk", "sk", "gsi1pk", "gsi1sk", "gsi2pk", "gsi2sk")
        ],
        GlobalSecondaryIndexes=[
            gsi("gsi0", "sk", "pk"),
            gsi("gsi1", "gsi1pk", "gsi1sk"),
            gsi("gsi2", "gsi2pk", "gsi2sk"),
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def ctx(monkeypatch: pytest.MonkeyPatch) -> Iterator[Context]:
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")

    with mock_aws():
        client = boto3.client("dynamodb", region_name="us-east-1")
        _create_table(client)

        app = layout(
            TABLE,
            partition_key="pk",
            sort_key="sk",
            find_keys=[
                index("gsi1", partition="gsi1pk", sort="gsi1sk"),
                index("gsi2", partition="gsi2pk", sort="gsi2sk"),
            ],
            list_all_key=index("gsi0", partition="sk", sort="pk"),
        )
        users = Collection(
            "users",
            app,
            (
                access_pattern("gsi1", sort=["email"]),
                access_pattern("gsi2", partition=["department"], sort=["lastName", "firstName"]),
            ),
        )
        orders = Collection("orders", app, (access_pattern("gsi1", partition=["userId"], sort=["createdAt"]),))
        # Partition-only pattern on an index that also has a sort key.
        posts = Collection("posts", app, (access_pattern("gsi2", partition=["userId"]),))
        yield create_context(client, [users, orders, posts], sink=null_sink)
