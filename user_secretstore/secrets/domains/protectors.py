"""User+machine bound encryption backends.

Two backends are provided:
- DPAPIProtector: Windows Data Protection API (CurrentUser scope) via pywin32
- FernetProtector: portable fallback, Fernet keyed from a per-user master key
  mixed with the machine identifier through HKDF

Both return decrypted material as a mutable bytearray so the caller can wipe it.
"""
import base64
import logging
import os
import sys
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from . import preferences
from .models import ConfigError

try:
    import win32crypt
except ImportError:  # pragma: no cover - Windows only dependency
    win32crypt = None

logger = logging.getLogger(__name__)

MACHINE_ID_PATHS = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))
MASTER_KEY_SIZE = 32
HKDF_INFO = b"user-secretstore/fernet/v1"


class Protector(ABC):
    """Reversible encryption bound to the invoking user and machine."""

    name = "protector"

    @abstractmethod
    def protect(self, plaintext: str) -> str:
        """Encrypt plaintext and return an opaque text blob."""

    @abstractmethod
    def unprotect(self, blob: str) -> bytearray:
        """Decrypt a blob produced by protect() under the same user+machine."""


class DPAPIProtector(Protector):
    """Windows DPAPI, user scope. Blobs are base64 encoded for text stores."""

    name = "dpapi"

    def __init__(self):
        if win32crypt is None:
            raise RuntimeError("win32crypt not available. Please install pywin32.")

    def protect(self, plaintext: str) -> str:
        blob = win32crypt.CryptProtectData(plaintext.encode("utf-8"), None, None, None, None, 0)
        return base64.b64encode(blob).decode("ascii")

    def unprotect(self, blob: str) -> bytearray:
        raw = base64.b64decode(blob.encode("ascii"), validate=True)
        _description, data = win32crypt.CryptUnprotectData(raw, None, None, None, 0)
        return bytearray(data)


def default_key_path() -> Path:
    """Master key lives next to preferences.json."""
    return preferences.PREFERENCES_DIR / "master.key"


def get_machine_id() -> bytes:
    """
    Return a stable identifier for this machine.

    Priority order:
    1. /etc/machine-id (systemd)
    2. /var/lib/dbus/machine-id
    3. uuid.getnode() (MAC based)
    """
    for path in MACHINE_ID_PATHS:
        try:
            value = path.read_text().strip()
        except OSError:
            continue
        if value:
            return value.encode("ascii")

    logger.debug("No machine-id file found, falling back to uuid.getnode()")
    return f"{uuid.getnode():012x}".encode("ascii")


class FernetProtector(Protector):
    """
    Fernet encryption keyed per user and per machine.

    The Fernet key is HKDF-SHA256(master_key, salt=machine_id). The master key
    is 32 random bytes kept in a 0600 file in the user's config directory, so a
    blob only decrypts for the same key file on the same machine.
    """

    name = "fernet"

    def __init__(self, key_path: Optional[Path] = None, machine_id: Optional[bytes] = None):
        self.key_path = Path(key_path) if key_path else default_key_path()
        self._machine_id = machine_id
        self._fernet: Optional[Fernet] = None

    def _load_or_create_master_key(self) -> bytes:
        if self.key_path.exists():
            key = self.key_path.read_bytes()
            if len(key) != MASTER_KEY_SIZE:
                raise RuntimeError(
                    f"Master key at {self.key_path} is corrupt "
                    f"(expected {MASTER_KEY_SIZE} bytes, got {len(key)})"
                )
            return key

        key = os.urandom(MASTER_KEY_SIZE)
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.key_path.with_name(self.key_path.name + ".tmp")
        fd = os.open(str(tmp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        os.replace(tmp_path, self.key_path)
        if sys.platform != "win32":
            os.chmod(self.key_path, 0o600)
        logger.info(f"Created new master key at {self.key_path}")
        return key

    @property
    def fernet(self) -> Fernet:
        """Lazy-initialize the Fernet instance."""
        if self._fernet is None:
            machine_id = self._machine_id if self._machine_id is not None else get_machine_id()
            hkdf = HKDF(
                algorithm=hashes.SHA256(),
                length=32,
                salt=machine_id,
                info=HKDF_INFO,
            )
            derived = hkdf.derive(self._load_or_create_master_key())
            self._fernet = Fernet(base64.urlsafe_b64encode(derived))
        return self._fernet

    def protect(self, plaintext: str) -> str:
        return self.fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def unprotect(self, blob: str) -> bytearray:
        return bytearray(self.fernet.decrypt(blob.encode("ascii")))


def default_protector(config: Optional[Dict[str, Any]] = None) -> Protector:
    """
    Build the protector named by config.

    Args:
        config: Loaded configuration (see config_loader.load_config)

    Returns:
        Protector instance

    Raises:
        ConfigError: If the configured backend is unknown or unavailable
    """
    section = (config or {}).get("protector") or {}
    backend = section.get("backend", "auto")

    if backend == "auto":
        backend = "dpapi" if sys.platform == "win32" else "fernet"

    if backend == "dpapi":
        try:
            return DPAPIProtector()
        except RuntimeError as e:
            raise ConfigError(f"DPAPI protector unavailable: {e}") from e
    if backend == "fernet":
        key_path = section.get("key_path")
        return FernetProtector(Path(key_path).expanduser() if key_path else None)

    raise ConfigError(
        f"Unsupported protector backend: {backend}\n"
        f"Supported: auto, dpapi, fernet"
    )
