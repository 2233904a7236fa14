from __future__ import annotations


class InlineEntityFormError(Exception):
    """Base class for errors raised by inline entity form widgets."""


class RowValidationError(InlineEntityFormError):
    """Raised when a sub-form or the widget itself fails validation.

    ``delta`` is the row's display position before any reordering, or
    ``None`` when the error belongs to the widget as a whole.
    """

    def __init__(self, messages, delta: int | None = None):
        if isinstance(messages, str):
            messages = [messages]
        self.messages = list(messages)
        self.delta = delta
        super().__init__("; ".join(self.messages))


class AccessDenied(InlineEntityFormError):
    """Raised when an action needs a permission the current user lacks."""

    def __init__(self, operation: str, record=None):
        self.operation = operation
        self.record = record
        super().__init__(f"Access denied for '{operation}' on {record!r}")


class PersistenceError(InlineEntityFormError):
    """Raised when the storage backend fails to save or delete a record."""

    def __init__(self, message: str, *, delta: int | None = None, record_id=None):
        self.delta = delta
        self.record_id = record_id
        super().__init__(message)


class StaleInstance(InlineEntityFormError):
    """Raised when no state exists for a widget instance id."""

    def __init__(self, ief_id: str):
        self.ief_id = ief_id
        super().__init__(f"No inline entity form state for {ief_id}")
