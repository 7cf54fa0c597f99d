from typing import Optional


class LendifyError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StoreError(LendifyError):
    """A remote call failed. The cached snapshot is left as it was."""
    kind = "store"
    status_code = 502

    def __init__(self, collection: str, operation: str, message: str,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.collection = collection
        self.operation = operation
        self.cause = cause

    def __str__(self):
        return f"{self.collection}.{self.operation}: {self.message}"

    def relabel(self, message: str) -> "StoreError":
        """Same failure, with the message of the action that hit it."""
        return type(self)(self.collection, self.operation, message, cause=self.cause)


class DecodeError(StoreError):
    """A fetched row did not match its schema."""
    kind = "decode"


class InvalidInput(LendifyError):
    kind = "validation"
    status_code = 422


class RuleViolation(LendifyError):
    kind = "rule"
    status_code = 409


class NotFound(LendifyError):
    kind = "not_found"
    status_code = 404
