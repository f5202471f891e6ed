from __future__ import annotations

import pytest

from singletable_py import Collection, Layout, RecordingSink, access_pattern, create_context, index, layout
from singletable_py.context import Context
from singletable_py.mocks import FakeDynamoDBClient


@pytest.fixture
def app_layout() -> Layout:
    return layout(
        "app",
        partition_key="pk",
        sort_key="sk",
        find_keys=[
            index("gsi1", partition="gsi1pk", sort="gsi1sk"),
            index("gsi2", partition="gsi2pk", sort="gsi2sk"),
        ],
        list_all_key=index("gsi0", partition="sk", sort="pk"),
    )


@pytest.fixture
def users(app_layout: Layout) -> Collection:
    return Collection(
        name="users",
        layout=app_layout,
        access_patterns=(
            access_pattern("gsi1", partition=["email"]),
            access_pattern("gsi2", partition=["department"], sort=["lastName", "firstName"]),
        ),
    )


@pytest.fixture
def orders(app_layout: Layout) -> Collection:
    # Shares gsi1 with users (index overloading).
    return Collection(
        name="orders",
        layout=app_layout,
        access_patterns=(access_pattern("gsi1", partition=["userId"], sort=["createdAt"]),),
    )


@pytest.fixture
def fake_client() -> FakeDynamoDBClient:
    return FakeDynamoDBClient()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def ctx(fake_client: FakeDynamoDBClient, users: Collection, orders: Collection, sink: RecordingSink) -> Context:
    return create_context(fake_client, [users, orders], sink=sink)
