class DataAccessException(Exception):
    """Base exception for the data-access layer"""

    pass


class NotFoundException(DataAccessException):
    """Raised when a record is missing or not visible to the requester"""

    pass


class ForbiddenException(DataAccessException):
    """Raised when the requester may not act on a tenant"""

    pass


class ValidationException(DataAccessException):
    """
    Raised for invalid user input.

    Carries the requester's locale and a message key; rendering the key into
    a localized sentence is left to the presentation layer.
    """

    def __init__(self, language: str | None, message_key: str):
        super().__init__(message_key)
        self.language = language
        self.message_key = message_key


class DuplicateKeyException(DataAccessException):
    """Raised by the store when a write violates a unique index"""

    def __init__(self, table: str | None, fields: list[str]):
        super().__init__(f"Duplicate key on {table}: {', '.join(fields) or 'unknown fields'}")
        self.table = table
        self.fields = fields


class ConcurrentModificationException(DataAccessException):
    """Raised when a record changed since it was loaded (optimistic lock)"""

    pass


class TransactionStateException(DataAccessException):
    """Raised on misuse of a transaction (double commit, commit after abort, ...)"""

    pass
