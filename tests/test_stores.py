"""Tests for key-value store backends."""
import json
import os
import sys
import threading

import pytest
from keyring.errors import KeyringError, PasswordSetError

from conftest import IdentityProtector
from user_secretstore.secrets.domains import stores
from user_secretstore.secrets.domains.models import (
    ConfigError,
    SecretNotFoundError,
    StorageReadError,
    StorageWriteError,
)
from user_secretstore.secrets.domains.stores import JsonFileStore, KeyringStore, RegistryStore, default_store
from user_secretstore.secrets.workflows.secret_operations import SecretStore


@pytest.fixture
def secrets_file(tmp_path):
    return tmp_path / "store" / "secrets.json"


class TestJsonFileStore:

    def test_missing_file_reads_none(self, secrets_file):
        assert JsonFileStore(secrets_file).read("MyPwd") is None

    def test_write_then_read(self, secrets_file):
        store = JsonFileStore(secrets_file)
        store.write("MyPwd", "blob-1")

        assert store.read("MyPwd") == "blob-1"
        assert store.read("Other") is None

    def test_write_keeps_other_entries(self, secrets_file):
        store = JsonFileStore(secrets_file)
        store.write("first", "blob-1")
        store.write("second", "blob-2")
        store.write("first", "blob-3")

        with open(secrets_file) as f:
            data = json.load(f)
        assert data == {"first": "blob-3", "second": "blob-2"}

    def test_file_is_owner_only(self, secrets_file):
        JsonFileStore(secrets_file).write("MyPwd", "blob")
        if sys.platform != "win32":
            assert (os.stat(secrets_file).st_mode & 0o777) == 0o600

    def test_no_temp_files_left_behind(self, secrets_file):
        JsonFileStore(secrets_file).write("MyPwd", "blob")
        assert sorted(p.name for p in secrets_file.parent.iterdir()) == ["secrets.json", "secrets.json.lock"]

    def test_corrupt_file_raises_read_error(self, secrets_file):
        secrets_file.parent.mkdir(parents=True)
        secrets_file.write_text("{not json")

        with pytest.raises(StorageReadError):
            JsonFileStore(secrets_file).read("MyPwd")

    def test_non_object_file_raises_read_error(self, secrets_file):
        secrets_file.parent.mkdir(parents=True)
        secrets_file.write_text("[1, 2, 3]")

        with pytest.raises(StorageReadError):
            JsonFileStore(secrets_file).read("MyPwd")

    def test_write_refuses_to_clobber_corrupt_file(self, secrets_file):
        secrets_file.parent.mkdir(parents=True)
        secrets_file.write_text("{not json")

        with pytest.raises(StorageWriteError):
            JsonFileStore(secrets_file).write("MyPwd", "blob")

        assert secrets_file.read_text() == "{not json"

    def test_unwritable_directory_raises_write_error(self, secrets_file, monkeypatch):
        def fail_mkstemp(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(stores.tempfile, "mkstemp", fail_mkstemp)

        with pytest.raises(StorageWriteError) as exc_info:
            JsonFileStore(secrets_file).write("MyPwd", "blob")

        assert exc_info.value.name == "MyPwd"

    def test_write_waits_for_lock_and_keeps_other_record(self, secrets_file):
        """A write blocked behind another writer reloads after it, so both records survive."""
        store = JsonFileStore(secrets_file)
        other = JsonFileStore(secrets_file)
        done = threading.Event()
        errors = []

        def write_first():
            try:
                store.write("First", "blob-1")
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)
            finally:
                done.set()

        with other._locked():
            writer = threading.Thread(target=write_first)
            writer.start()
            assert not done.wait(0.3)
            # Another writer lands a different name while the first is blocked
            other._replace({"Second": "blob-2"})

        writer.join(10)
        assert errors == []
        assert store.read("First") == "blob-1"
        assert store.read("Second") == "blob-2"

    def test_concurrent_writers_of_different_names(self, secrets_file):
        names = [f"secret_{i}" for i in range(16)]
        barrier = threading.Barrier(len(names))
        errors = []

        def write(name):
            try:
                barrier.wait(5)
                JsonFileStore(secrets_file).write(name, f"blob-{name}")
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=write, args=(name,)) for name in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        assert errors == []
        with open(secrets_file) as f:
            data = json.load(f)
        assert data == {name: f"blob-{name}" for name in names}

    def test_default_path_under_preferences_dir(self, temp_home):
        store = JsonFileStore()
        assert store.path == temp_home / ".config" / "user-secretstore" / "secrets.json"


class TestKeyringStore:

    @pytest.fixture
    def fake_keyring(self, monkeypatch):
        entries = {}

        def get_password(service, username):
            return entries.get((service, username))

        def set_password(service, username, password):
            entries[(service, username)] = password

        monkeypatch.setattr(stores.keyring, "get_password", get_password)
        monkeypatch.setattr(stores.keyring, "set_password", set_password)
        return entries

    def test_write_then_read(self, fake_keyring):
        store = KeyringStore("test-service")
        store.write("MyPwd", "blob")

        assert store.read("MyPwd") == "blob"
        assert fake_keyring == {("test-service", "MyPwd"): "blob"}

    def test_missing_reads_none(self, fake_keyring):
        assert KeyringStore().read("MyPwd") is None

    def test_keyring_read_error(self, monkeypatch):
        def get_password(service, username):
            raise KeyringError("locked")

        monkeypatch.setattr(stores.keyring, "get_password", get_password)

        with pytest.raises(StorageReadError):
            KeyringStore().read("MyPwd")

    def test_keyring_write_error(self, monkeypatch):
        def set_password(service, username, password):
            raise PasswordSetError("no backend")

        monkeypatch.setattr(stores.keyring, "set_password", set_password)

        with pytest.raises(StorageWriteError):
            KeyringStore().write("MyPwd", "blob")


class TestDefaultStore:

    def test_file_backend_default(self, temp_home):
        store = default_store({})
        assert isinstance(store, JsonFileStore)

    def test_file_backend_custom_path(self, temp_home):
        store = default_store({"store": {"backend": "file", "path": "~/vault/secrets.json"}})
        assert store.path == temp_home / "vault" / "secrets.json"

    def test_keyring_backend(self):
        store = default_store({"store": {"backend": "keyring", "service": "custom"}})
        assert isinstance(store, KeyringStore)
        assert store.service == "custom"

    def test_registry_unavailable_raises_config_error(self, monkeypatch):
        monkeypatch.setattr(stores, "winreg", None)
        with pytest.raises(ConfigError):
            default_store({"store": {"backend": "registry"}})

    def test_unknown_backend(self):
        with pytest.raises(ConfigError) as exc_info:
            default_store({"store": {"backend": "s3"}})
        assert "Unsupported store backend" in str(exc_info.value)


class _FakeRegKey:
    def __init__(self, values):
        self.values = values

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeWinreg:
    """Stands in for the stdlib winreg module on non-Windows hosts."""

    HKEY_CURRENT_USER = "HKEY_CURRENT_USER"
    REG_SZ = 1

    def __init__(self):
        self.keys = {}
        self.read_error = None
        self.write_error = None

    def OpenKey(self, root, path):
        if (root, path) not in self.keys:
            raise FileNotFoundError(2, "The system cannot find the file specified")
        return _FakeRegKey(self.keys[(root, path)])

    def CreateKey(self, root, path):
        if self.write_error:
            raise self.write_error
        return _FakeRegKey(self.keys.setdefault((root, path), {}))

    def QueryValueEx(self, key, name):
        if self.read_error:
            raise self.read_error
        if name not in key.values:
            raise FileNotFoundError(2, "The system cannot find the file specified")
        return key.values[name], self.REG_SZ

    def SetValueEx(self, key, name, reserved, value_type, value):
        key.values[name] = value
        self.last_type = value_type


class TestRegistryStore:

    @pytest.fixture
    def fake_winreg(self, monkeypatch):
        fake = FakeWinreg()
        monkeypatch.setattr(stores, "winreg", fake)
        return fake

    def test_write_then_read(self, fake_winreg):
        store = RegistryStore()
        store.write("MyPwd", "blob")

        assert store.read("MyPwd") == "blob"
        assert fake_winreg.keys == {("HKEY_CURRENT_USER", r"Software\UserSecretStore"): {"MyPwd": "blob"}}
        assert fake_winreg.last_type == FakeWinreg.REG_SZ

    def test_missing_key_reads_none(self, fake_winreg):
        assert RegistryStore().read("MyPwd") is None

    def test_missing_value_reads_none(self, fake_winreg):
        store = RegistryStore()
        store.write("Other", "blob")
        assert store.read("MyPwd") is None

    def test_missing_value_surfaces_as_not_found(self, fake_winreg):
        store = SecretStore(RegistryStore(), IdentityProtector())

        with pytest.raises(SecretNotFoundError):
            store.get_secret("MyPwd")

    def test_round_trip_through_secret_store(self, fake_winreg):
        store = SecretStore(RegistryStore(), IdentityProtector())

        assert store.put_secret("MyPwd", "Welcome123")
        assert store.get_secret("MyPwd") == "Welcome123"
        assert "Welcome123" not in fake_winreg.keys[("HKEY_CURRENT_USER", r"Software\UserSecretStore")]["MyPwd"]

    def test_read_os_error(self, fake_winreg):
        store = RegistryStore()
        store.write("MyPwd", "blob")
        fake_winreg.read_error = PermissionError(5, "Access is denied")

        with pytest.raises(StorageReadError) as exc_info:
            store.read("MyPwd")

        assert exc_info.value.name == "MyPwd"

    def test_write_os_error(self, fake_winreg):
        fake_winreg.write_error = PermissionError(5, "Access is denied")

        with pytest.raises(StorageWriteError):
            RegistryStore().write("MyPwd", "blob")

    def test_default_store_selects_registry(self, fake_winreg):
        assert isinstance(default_store({"store": {"backend": "registry"}}), RegistryStore)
