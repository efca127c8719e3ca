"""Per-user key-value stores holding encrypted secret blobs."""
import json
import logging
import os
import sys
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from keyring.errors import KeyringError

from . import preferences
from .models import ConfigError, StorageReadError, StorageWriteError

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

try:
    import winreg
except ImportError:  # pragma: no cover - Windows only
    winreg = None

logger = logging.getLogger(__name__)

REGISTRY_KEY_PATH = r"Software\UserSecretStore"


class KeyValueStore(ABC):
    """String-keyed persistent store. Values are opaque encrypted blobs."""

    name = "store"

    @abstractmethod
    def read(self, name: str) -> Optional[str]:
        """Return the stored value, or None when absent."""

    @abstractmethod
    def write(self, name: str, value: str) -> None:
        """Create or replace the value for name."""


class JsonFileStore(KeyValueStore):
    """
    JSON object on disk, one entry per secret name.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so readers never see a half-written file. The whole
    load-modify-replace runs under an exclusive lock on a sidecar
    ``<file>.lock``, so concurrent writers of different names don't drop
    each other's records. The file is created owner-only (0600).
    """

    name = "file"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else preferences.PREFERENCES_DIR / "secrets.json"

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @contextmanager
    def _locked(self):
        """Hold an exclusive advisory lock on lock_path for the block."""
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o600)
        try:
            if sys.platform == 'win32':
                msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                if sys.platform == 'win32':
                    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
                else:
                    fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageReadError(f"Failed to parse secrets file {self.path}: {e}") from e
        except OSError as e:
            raise StorageReadError(f"Failed to read secrets file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageReadError(f"Secrets file {self.path} is not a JSON object")
        return data

    def _replace(self, data: Dict[str, str]) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=".secrets-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(data, f, indent=2, sort_keys=True)
            if sys.platform != 'win32':
                os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def read(self, name: str) -> Optional[str]:
        return self._load().get(name)

    def write(self, name: str, value: str) -> None:
        try:
            with self._locked():
                try:
                    data = self._load()
                except StorageReadError as e:
                    raise StorageWriteError(
                        f"Refusing to overwrite unreadable secrets file: {e}", name=name
                    ) from e
                data[name] = value
                self._replace(data)
        except OSError as e:
            raise StorageWriteError(f"Failed to write secrets file {self.path}: {e}", name=name) from e

        logger.debug(f"Wrote '{name}' to {self.path}")


class KeyringStore(KeyValueStore):
    """OS credential store via the keyring library (one entry per name)."""

    name = "keyring"

    def __init__(self, service: str = "user-secretstore"):
        self.service = service

    def read(self, name: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, name)
        except KeyringError as e:
            raise StorageReadError(f"Failed to read keyring entry '{name}': {e}", name=name) from e

    def write(self, name: str, value: str) -> None:
        try:
            keyring.set_password(self.service, name, value)
        except KeyringError as e:
            raise StorageWriteError(f"Failed to write keyring entry '{name}': {e}", name=name) from e
        logger.debug(f"Wrote '{name}' to keyring service {self.service}")


class RegistryStore(KeyValueStore):
    """Windows registry values under HKEY_CURRENT_USER\\Software\\UserSecretStore."""

    name = "registry"

    def __init__(self, key_path: str = REGISTRY_KEY_PATH):
        if winreg is None:
            raise RuntimeError("winreg is only available on Windows")
        self.key_path = key_path

    def read(self, name: str) -> Optional[str]:
        try:
            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, self.key_path) as key:
                value, _value_type = winreg.QueryValueEx(key, name)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageReadError(f"Failed to read registry value '{name}': {e}", name=name) from e
        return value

    def write(self, name: str, value: str) -> None:
        try:
            with winreg.CreateKey(winreg.HKEY_CURRENT_USER, self.key_path) as key:
                winreg.SetValueEx(key, name, 0, winreg.REG_SZ, value)
        except OSError as e:
            raise StorageWriteError(f"Failed to write registry value '{name}': {e}", name=name) from e
        logger.debug(f"Wrote '{name}' to HKCU\\{self.key_path}")


def default_store(config: Optional[Dict[str, Any]] = None) -> KeyValueStore:
    """
    Build the key-value store named by config.

    Raises:
        ConfigError: If the configured backend is unknown or unavailable
    """
    section = (config or {}).get("store") or {}
    backend = section.get("backend", "file")

    if backend == "file":
        path = section.get("path")
        return JsonFileStore(Path(path).expanduser() if path else None)
    if backend == "keyring":
        return KeyringStore(section.get("service") or "user-secretstore")
    if backend == "registry":
        try:
            return RegistryStore()
        except RuntimeError as e:
            raise ConfigError(f"Registry store unavailable: {e}") from e

    raise ConfigError(
        f"Unsupported store backend: {backend}\n"
        f"Supported: file, keyring, registry"
    )
