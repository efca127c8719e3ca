"""Shared fixtures: fake home directory and in-memory test doubles."""
import base64
from pathlib import Path

import pytest

from user_secretstore.secrets.domains import preferences
from user_secretstore.secrets.domains.protectors import Protector
from user_secretstore.secrets.domains.stores import KeyValueStore
from user_secretstore.secrets.workflows.secret_operations import SecretStore


class MemoryStore(KeyValueStore):
    """Dict-backed store that counts reads and writes."""

    name = "memory"

    def __init__(self):
        self.data = {}
        self.reads = 0
        self.writes = 0

    def read(self, name):
        self.reads += 1
        return self.data.get(name)

    def write(self, name, value):
        self.writes += 1
        self.data[name] = value


class IdentityProtector(Protector):
    """Reversible fake bound to an identity string such as 'alice@host1'.

    Every buffer handed out by unprotect() is kept so tests can check it
    was wiped.
    """

    name = "fake"

    def __init__(self, identity="alice@host1"):
        self.identity = identity
        self.handed_out = []

    def protect(self, plaintext):
        payload = self.identity.encode() + b"|" + plaintext.encode("utf-8")
        return base64.b64encode(payload).decode("ascii")

    def unprotect(self, blob):
        identity, _, data = base64.b64decode(blob).partition(b"|")
        if identity.decode() != self.identity:
            raise ValueError("blob was protected by a different principal")
        buf = bytearray(data)
        self.handed_out.append(buf)
        return buf


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Fixture to create a temporary home directory for testing."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)

    fake_config_dir = fake_home / ".config" / "user-secretstore"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")

    monkeypatch.delenv("USER_SECRETSTORE_BACKEND", raising=False)
    monkeypatch.delenv("USER_SECRETSTORE_PROTECTOR", raising=False)

    return fake_home


@pytest.fixture
def temp_config_dir(temp_home):
    config_dir = temp_home / ".config" / "user-secretstore"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def protector():
    return IdentityProtector()


@pytest.fixture
def secret_store(memory_store, protector):
    return SecretStore(memory_store, protector)
