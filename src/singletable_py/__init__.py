from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .collection import AccessPattern, Collection, access_pattern
from .conditions import (
    And,
    BeginsWith,
    Between,
    CompiledCondition,
    Comparison,
    Condition,
    Contains,
    Exists,
    In,
    Not,
    Or,
    and_,
    begins_with,
    between,
    compile_condition,
    contains,
    eq,
    exists,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
    not_,
    not_exists,
    or_,
    parse_condition,
)
from .context import Context, create_context
from .cursor import Page
from .errors import (
    AwsError,
    CollectionNotFoundError,
    ConditionFailedError,
    ConfigurationError,
    DuplicateKeyError,
    InvalidConditionError,
    InvalidFindDescriptorError,
    InvalidIndexedFieldValueError,
    InvalidUpdateError,
    MissingAttributeError,
    NotFoundError,
    SingletableError,
    TransactionCanceledError,
    TransactionConflictError,
    TransactionSizeError,
    ValidationError,
)
from .keys import derive_keys
from .layout import KeyAttributes, Layout, SecondaryIndex, index, layout
from .observability import OperationEvent, RecordingSink, logging_sink, null_sink
from .operations import (
    delete_by_id,
    find,
    find_all,
    find_by_id,
    insert,
    list_all,
    list_all_items,
    replace,
    update_by_id,
)
from .transaction import (
    FindByIdDescriptor,
    TransactDelete,
    TransactReplace,
    TransactWriteRequest,
    transact_find_by_ids,
    transact_write,
)

if TYPE_CHECKING:
    from .mocks import FakeDynamoDBClient, render_expression
    from .runtime import (
        AwsCallMetric,
        ClientSettings,
        create_boto3_config,
        create_dynamodb_client,
        instrument_boto3_client,
    )


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {
        "AwsCallMetric",
        "ClientSettings",
        "create_boto3_config",
        "create_dynamodb_client",
        "instrument_boto3_client",
    }:
        from . import runtime

        return getattr(runtime, name)
    if name in {"FakeDynamoDBClient", "render_expression"}:
        from . import mocks

        return getattr(mocks, name)
    raise AttributeError(name)


__all__ = [
    "AccessPattern",
    "And",
    "AwsCallMetric",
    "AwsError",
    "BeginsWith",
    "Between",
    "ClientSettings",
    "Collection",
    "CollectionNotFoundError",
    "CompiledCondition",
    "Comparison",
    "Condition",
    "ConditionFailedError",
    "ConfigurationError",
    "Contains",
    "Context",
    "DuplicateKeyError",
    "Exists",
    "FakeDynamoDBClient",
    "FindByIdDescriptor",
    "In",
    "InvalidConditionError",
    "InvalidFindDescriptorError",
    "InvalidIndexedFieldValueError",
    "InvalidUpdateError",
    "KeyAttributes",
    "Layout",
    "MissingAttributeError",
    "Not",
    "NotFoundError",
    "OperationEvent",
    "Or",
    "Page",
    "RecordingSink",
    "SecondaryIndex",
    "SingletableError",
    "TransactDelete",
    "TransactReplace",
    "TransactWriteRequest",
    "TransactionCanceledError",
    "TransactionConflictError",
    "TransactionSizeError",
    "ValidationError",
    "__repo_version__",
    "__version__",
    "access_pattern",
    "and_",
    "begins_with",
    "between",
    "compile_condition",
    "contains",
    "create_boto3_config",
    "create_context",
    "create_dynamodb_client",
    "delete_by_id",
    "derive_keys",
    "eq",
    "exists",
    "find",
    "find_all",
    "find_by_id",
    "gt",
    "gte",
    "in_",
    "index",
    "insert",
    "instrument_boto3_client",
    "layout",
    "list_all",
    "list_all_items",
    "logging_sink",
    "lt",
    "lte",
    "ne",
    "not_",
    "not_exists",
    "null_sink",
    "or_",
    "parse_condition",
    "render_expression",
    "replace",
    "transact_find_by_ids",
    "transact_write",
    "update_by_id",
]
