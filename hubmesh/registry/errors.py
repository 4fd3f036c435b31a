"""Registry exception types."""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for registry failures."""


class StoreUnavailable(RegistryError):
    """Raised when the backing store cannot be reached or errors out."""


class RecordMalformed(RegistryError):
    """Raised when a stored record is missing required fields or cannot be parsed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason
