"""Error taxonomy shared by the core, the store and the CLI.

Every failure the core can report belongs to exactly one ErrorKind. Callers
branch on the exception class (or its ``kind``) and never on message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    AUTHENTICATION_FAILURE = "AUTHENTICATION_FAILURE"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    STORAGE_FAILURE = "STORAGE_FAILURE"


# Default messages
ERROR_MESSAGES = {
    ErrorKind.AUTHENTICATION_FAILURE: "Authentication failed",
    ErrorKind.VALIDATION_FAILURE: "Invalid input",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.ALREADY_EXISTS: "Already exists",
    ErrorKind.STORAGE_FAILURE: "Storage error",
}


class VaultError(Exception):
    """Base class for all strongbox errors."""

    kind: ErrorKind

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or ERROR_MESSAGES[self.kind])

    @property
    def message(self) -> str:
        return str(self)


class AuthenticationFailure(VaultError):
    """AEAD tag mismatch: wrong master password or a tampered record."""

    kind = ErrorKind.AUTHENTICATION_FAILURE


class ValidationFailure(VaultError):
    """Malformed input caught before any cryptographic operation."""

    kind = ErrorKind.VALIDATION_FAILURE


class NotFound(VaultError):
    """Vault not initialized, or no matching credential."""

    kind = ErrorKind.NOT_FOUND


class AlreadyExists(VaultError):
    """Vault already initialized, or a (label, user) collision."""

    kind = ErrorKind.ALREADY_EXISTS


class StorageFailure(VaultError):
    """Persistence layer failure (I/O, corrupt rows)."""

    kind = ErrorKind.STORAGE_FAILURE
