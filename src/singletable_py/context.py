from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .collection import Collection
from .errors import CollectionNotFoundError, ConfigurationError
from .observability import EventSink, logging_sink
from .runtime import ClientSettings, create_dynamodb_client


def _registry(collections: Mapping[str, Collection] | Iterable[Collection]) -> Mapping[str, Collection]:
    if isinstance(collections, Mapping):
        for name, collection in collections.items():
            if name != collection.name:
                raise ConfigurationError(f"collection registered as {name!r} is named {collection.name!r}")
        collections = collections.values()

    registry: dict[str, Collection] = {}
    for collection in collections:
        if not isinstance(collection, Collection):
            raise ConfigurationError(f"expected a Collection (got {type(collection).__name__})")
        if collection.name in registry:
            raise ConfigurationError(f"duplicate collection name: {collection.name}")
        collection.validate()
        registry[collection.name] = collection
    return MappingProxyType(registry)


@dataclass(frozen=True)
class Context:
    """Store client, collection registry and event sink for every operation.

    ``collections`` may be given as an iterable or a name mapping; it is
    validated and frozen on construction. Several contexts may coexist in one
    process.
    """

    client: Any
    collections: Mapping[str, Collection]
    sink: EventSink = field(default=logging_sink, kw_only=True)

    def __post_init__(self) -> None:
        object.__setattr__(self, "collections", _registry(self.collections))
        if self.sink is None:
            object.__setattr__(self, "sink", logging_sink)

    def get_collection(self, name: str) -> Collection:
        collection = self.collections.get(name)
        if collection is None:
            raise CollectionNotFoundError(name)
        return collection


def create_context(
    client: Any | None = None,
    collections: Iterable[Collection] = (),
    *,
    sink: EventSink | None = None,
    settings: ClientSettings | None = None,
) -> Context:
    return Context(
        client=client if client is not None else create_dynamodb_client(settings),
        collections=collections,  # type: ignore[arg-type]
        sink=sink or logging_sink,
    )
