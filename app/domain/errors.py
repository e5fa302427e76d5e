from __future__ import annotations


class DomainError(Exception):
    pass


class DomainValidationError(DomainError):
    pass


class DomainInvariantError(DomainError):
    pass


class DomainDependencyError(DomainError):
    pass


class ValidationRejectedError(DomainValidationError):
    """Record can never be staged as submitted (bad key, malformed payload)."""


class RecordNotFoundError(DomainError):
    def __init__(self, key: str) -> None:
        super().__init__(f"storage key not found: {key}")
        self.key = key


class StoreUnavailableError(DomainDependencyError):
    """Transport-level failure reported by an object store adapter."""
