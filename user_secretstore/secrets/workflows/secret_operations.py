"""Workflow for named secret put/get over a store and a protector."""
import logging
from typing import Callable, Optional

from ..domains.config_loader import load_config
from ..domains.models import (
    DecryptionFailedError,
    EncryptionFailedError,
    PutResult,
    SecretNotFoundError,
    SecretRecord,
    SecretStoreError,
    StorageReadError,
    StorageWriteError,
)
from ..domains.protectors import Protector, default_protector
from ..domains.secure_buffer import SecureBuffer
from ..domains.stores import KeyValueStore, default_store
from ..domains.validators import validate_content, validate_name

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]


class SecretStore:
    """
    Named secrets encrypted for the current user and machine.

    Both collaborators are injected: the store only ever sees encrypted
    blobs, and plaintext is never logged or put in an error message.
    """

    def __init__(self, store: KeyValueStore, protector: Protector):
        self.store = store
        self.protector = protector

    def _read(self, name: str) -> Optional[str]:
        try:
            return self.store.read(name)
        except SecretStoreError:
            raise
        except Exception as e:
            raise StorageReadError(f"Failed to read secret '{name}' from {self.store.name} store: {e}", name=name) from e

    def _write(self, record: SecretRecord) -> None:
        try:
            self.store.write(record.name, record.encrypted_value)
        except SecretStoreError:
            raise
        except Exception as e:
            raise StorageWriteError(
                f"Failed to write secret '{record.name}' to {self.store.name} store: {e}",
                name=record.name,
            ) from e

    def put_secret(
        self,
        name: str,
        content: str,
        overwrite: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> PutResult:
        """
        Encrypt content and persist it under name.

        Args:
            name: Secret name, must match ^[A-Za-z_][A-Za-z0-9_]*$
            content: Plaintext to protect (non-empty)
            overwrite: Replace an existing record without asking
            confirm: Called with the name when a record exists and overwrite
                is False; a truthy return grants the overwrite

        Returns:
            PutResult.WRITTEN when persisted, PutResult.DECLINED when an
            existing record was kept

        Raises:
            InvalidNameError, EmptyContentError: Before the store is touched
            StorageReadError: Existing value could not be checked
            EncryptionFailedError: Protector failed, nothing written
            StorageWriteError: Store rejected the write
        """
        validate_name(name)
        validate_content(content, name=name)

        existing = self._read(name)
        if existing is not None and not overwrite:
            if confirm is None or not confirm(name):
                logger.info(f"Secret '{name}' already exists, overwrite declined")
                return PutResult.DECLINED
            logger.debug(f"Overwrite of '{name}' confirmed by caller")

        try:
            blob = self.protector.protect(content)
        except Exception as e:
            # from None: the protector's exception may quote the plaintext
            raise EncryptionFailedError(
                f"Failed to encrypt secret '{name}' with {self.protector.name} protector: {type(e).__name__}",
                name=name,
            ) from None

        record = SecretRecord(name=name, encrypted_value=blob)
        self._write(record)

        action = "Replaced" if existing is not None else "Stored"
        logger.info(f"{action} secret '{name}' in {self.store.name} store")
        return PutResult.WRITTEN

    def get_secret(self, name: str) -> str:
        """
        Read and decrypt the secret stored under name.

        The decrypted bytes are held in a SecureBuffer and zeroed before
        this returns or raises.

        Raises:
            InvalidNameError: Name does not match the pattern
            SecretNotFoundError: No record for name
            DecryptionFailedError: Blob is corrupt or belongs to another
                user/machine
        """
        validate_name(name)

        blob = self._read(name)
        if blob is None:
            raise SecretNotFoundError(f"Secret '{name}' not found", name=name)

        try:
            raw = self.protector.unprotect(blob)
            if not isinstance(raw, bytearray):
                # Protector contract: unprotect() returns bytes-like data
                raw = bytearray(raw)
        except Exception as e:
            raise DecryptionFailedError(
                f"Failed to decrypt secret '{name}' with {self.protector.name} protector: {type(e).__name__}",
                name=name,
            ) from e

        with SecureBuffer(raw) as buf:
            try:
                plaintext = buf.decode("utf-8")
            except UnicodeDecodeError:
                # from None: UnicodeDecodeError carries the decrypted bytes
                raise DecryptionFailedError(
                    f"Decrypted secret '{name}' is not valid UTF-8",
                    name=name,
                ) from None

        logger.debug(f"Read secret '{name}' from {self.store.name} store")
        return plaintext


def default_secret_store() -> SecretStore:
    """Build a SecretStore from the user's configuration."""
    config = load_config()
    return SecretStore(default_store(config), default_protector(config))


def put_secret(
    name: str,
    content: str,
    overwrite: bool = False,
    confirm: Optional[ConfirmCallback] = None,
) -> PutResult:
    """Store a secret using the configured store and protector."""
    return default_secret_store().put_secret(name, content, overwrite=overwrite, confirm=confirm)


def get_secret(name: str) -> str:
    """Fetch a secret using the configured store and protector."""
    return default_secret_store().get_secret(name)
