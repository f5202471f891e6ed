from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError
from .validation import (
    NameValidationError,
    validate_attribute_name,
    validate_index_name,
    validate_table_name,
)

DEFAULT_SEPARATOR = "|-|"

# Attributes every stored item carries besides its keys.
VALUE_ATTRIBUTE = "value"
TYPE_ATTRIBUTE = "type"
RESERVED_ATTRIBUTES = frozenset({VALUE_ATTRIBUTE, TYPE_ATTRIBUTE})


@dataclass(frozen=True)
class KeyAttributes:
    partition_key: str
    sort_key: str | None = None


@dataclass(frozen=True)
class SecondaryIndex:
    index_name: str
    partition_key: str
    sort_key: str | None = None


@dataclass(frozen=True)
class Layout:
    """Physical description of one DynamoDB table shared by many collections.

    ``find_keys`` are the secondary indexes access patterns bind to. Several
    collections may bind to the same find key (index overloading).
    ``list_all_key`` is the index whose partition holds the collection name;
    its attributes may alias the primary key attributes.
    """

    table_name: str
    primary_key: KeyAttributes
    find_keys: tuple[SecondaryIndex, ...] = ()
    list_all_key: SecondaryIndex | None = None
    index_key_separator: str = DEFAULT_SEPARATOR

    def __post_init__(self) -> None:
        object.__setattr__(self, "find_keys", tuple(self.find_keys))

    def find_key(self, index_name: str) -> SecondaryIndex:
        for idx in self.find_keys:
            if idx.index_name == index_name:
                return idx
        raise ConfigurationError(f"{self.table_name}: unknown index: {index_name}")

    def validate(self) -> None:
        try:
            validate_table_name(self.table_name)
            for idx in self._all_indexes():
                validate_index_name(idx.index_name)
            for name in self._key_attribute_names():
                validate_attribute_name(name)
        except NameValidationError as err:
            raise ConfigurationError(str(err)) from err

        if not self.index_key_separator:
            raise ConfigurationError(f"{self.table_name}: index_key_separator cannot be empty")

        primary = self.primary_key
        if primary.sort_key is not None and primary.sort_key == primary.partition_key:
            raise ConfigurationError(f"{self.table_name}: primary partition and sort key must differ")

        list_all = self.list_all_key
        if list_all is not None:
            # The list-all partition holds the collection name and its sort holds the id,
            # the reverse of the primary key.
            if list_all.partition_key == primary.partition_key:
                raise ConfigurationError(
                    f"index {list_all.index_name}: list-all partition key cannot be the primary partition key"
                )
            if list_all.sort_key is not None and list_all.sort_key == primary.sort_key:
                raise ConfigurationError(
                    f"index {list_all.index_name}: list-all sort key cannot be the primary sort key"
                )

        seen_index_names: set[str] = set()
        for idx in self._all_indexes():
            if idx.index_name in seen_index_names:
                raise ConfigurationError(f"{self.table_name}: duplicate index name: {idx.index_name}")
            seen_index_names.add(idx.index_name)
            if idx.sort_key is not None and idx.sort_key == idx.partition_key:
                raise ConfigurationError(f"index {idx.index_name}: partition and sort key must differ")

        for name in self._key_attribute_names():
            if name in RESERVED_ATTRIBUTES:
                raise ConfigurationError(f"{self.table_name}: key attribute name is reserved: {name}")

        # Find key attributes hold derived values and may not share a name with
        # any other key role. The list-all key is allowed to alias the primary key.
        owners: dict[str, str] = {}
        fixed_roles = [primary.partition_key, primary.sort_key]
        if self.list_all_key is not None:
            fixed_roles += [self.list_all_key.partition_key, self.list_all_key.sort_key]
        for name in fixed_roles:
            if name is not None:
                owners[name] = "primary"

        for idx in self.find_keys:
            for name in (idx.partition_key, idx.sort_key):
                if name is None:
                    continue
                owner = owners.get(name)
                if owner is not None:
                    raise ConfigurationError(
                        f"index {idx.index_name}: attribute {name!r} is already used by {owner}"
                    )
                owners[name] = idx.index_name

    def _all_indexes(self) -> tuple[SecondaryIndex, ...]:
        if self.list_all_key is None:
            return self.find_keys
        return (self.list_all_key, *self.find_keys)

    def _key_attribute_names(self) -> list[str]:
        names = [self.primary_key.partition_key]
        if self.primary_key.sort_key is not None:
            names.append(self.primary_key.sort_key)
        for idx in self._all_indexes():
            names.append(idx.partition_key)
            if idx.sort_key is not None:
                names.append(idx.sort_key)
        return names


def layout(
    table_name: str,
    *,
    partition_key: str,
    sort_key: str | None = None,
    find_keys: tuple[SecondaryIndex, ...] | list[SecondaryIndex] = (),
    list_all_key: SecondaryIndex | None = None,
    index_key_separator: str = DEFAULT_SEPARATOR,
) -> Layout:
    out = Layout(
        table_name=table_name,
        primary_key=KeyAttributes(partition_key=partition_key, sort_key=sort_key),
        find_keys=tuple(find_keys),
        list_all_key=list_all_key,
        index_key_separator=index_key_separator,
    )
    out.validate()
    return out


def index(name: str, *, partition: str, sort: str | None = None) -> SecondaryIndex:
    return SecondaryIndex(index_name=name, partition_key=partition, sort_key=sort)
