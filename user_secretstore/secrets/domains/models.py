"""Domain models and error kinds for secret management."""
from dataclasses import dataclass
from enum import Enum


@dataclass
class SecretRecord:
    """A persisted secret: name plus the protector's opaque blob."""
    name: str
    encrypted_value: str

    def __repr__(self) -> str:
        return f"SecretRecord(name={self.name!r}, encrypted_value=<{len(self.encrypted_value)} chars>)"


class PutResult(Enum):
    """Outcome of put_secret.

    WRITTEN is truthy so callers can keep treating the result as a bool.
    DECLINED means an existing record was left alone because overwrite
    was not granted.
    """
    WRITTEN = "written"
    DECLINED = "declined"

    def __bool__(self) -> bool:
        return self is PutResult.WRITTEN


class SecretStoreError(Exception):
    """Base class for secret store failures."""
    kind = "SecretStoreError"

    def __init__(self, message: str, name: str = None):
        super().__init__(message)
        self.name = name


class InvalidNameError(SecretStoreError, ValueError):
    """Secret name does not match the allowed pattern."""
    kind = "InvalidName"


class EmptyContentError(SecretStoreError, ValueError):
    """Secret content is missing or empty."""
    kind = "EmptyContent"


class EncryptionFailedError(SecretStoreError):
    """Protector could not encrypt the content."""
    kind = "EncryptionFailed"


class StorageWriteError(SecretStoreError):
    """Backing store rejected the write."""
    kind = "StorageWriteFailed"


class StorageReadError(SecretStoreError):
    """Backing store could not be read."""
    kind = "StorageReadFailed"


class SecretNotFoundError(SecretStoreError, KeyError):
    """No record exists for the requested name."""
    kind = "NotFound"

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return Exception.__str__(self)


class DecryptionFailedError(SecretStoreError):
    """Stored blob could not be decrypted by the current user/machine."""
    kind = "DecryptionFailed"


class ConfigError(Exception):
    """Configuration error exception."""
    pass
