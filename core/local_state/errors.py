"""
POS Local State - Errors
==========================
"""


class PersistenceError(Exception):
    """A local state read or write failed."""

    def __init__(self, key: str, operation: str, cause: BaseException):
        self.key = key
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Local state {operation} failed for '{key}': {cause!r}"
        )
