from __future__ import annotations


class SingletableError(Exception):
    pass


class ConfigurationError(SingletableError):
    pass


class CollectionNotFoundError(ConfigurationError):
    def __init__(self, collection_name: str) -> None:
        super().__init__(f"unknown collection: {collection_name}")
        self.collection_name = collection_name


class ValidationError(SingletableError):
    pass


class InvalidFindDescriptorError(ValidationError):
    pass


class TransactionSizeError(InvalidFindDescriptorError):
    def __init__(self, message: str, *, size: int) -> None:
        super().__init__(message)
        self.size = size


class MissingAttributeError(ValidationError):
    def __init__(self, *, collection_name: str, path: tuple[str, ...]) -> None:
        super().__init__(f"{collection_name}: missing attribute {'.'.join(path)}")
        self.collection_name = collection_name
        self.path = path


class InvalidIndexedFieldValueError(ValidationError):
    def __init__(self, *, collection_name: str, path: tuple[str, ...], value: object) -> None:
        super().__init__(
            f"{collection_name}: indexed field {'.'.join(path)} must be a scalar (got {type(value).__name__})"
        )
        self.collection_name = collection_name
        self.path = path


class InvalidConditionError(ValidationError):
    pass


class InvalidUpdateError(ValidationError):
    pass


class ConditionFailedError(SingletableError):
    pass


class DuplicateKeyError(ConditionFailedError):
    def __init__(self, *, collection_name: str, id: str) -> None:
        super().__init__(f"{collection_name}: an item with _id {id!r} already exists")
        self.collection_name = collection_name
        self.id = id


class NotFoundError(SingletableError):
    pass


class TransactionCanceledError(SingletableError):
    def __init__(self, *, message: str, reason_codes: tuple[str, ...]) -> None:
        super().__init__(message)
        self.reason_codes = reason_codes


class TransactionConflictError(TransactionCanceledError):
    def __init__(
        self,
        *,
        message: str,
        reason_codes: tuple[str, ...],
        collection_name: str | None = None,
        id: str | None = None,
    ) -> None:
        super().__init__(message=message, reason_codes=reason_codes)
        self.collection_name = collection_name
        self.id = id


class AwsError(SingletableError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
