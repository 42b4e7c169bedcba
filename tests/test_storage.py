"""Tests for SQLite persistence."""

import sqlite3
from datetime import datetime, timezone

import pytest

from strongbox.errors import AlreadyExists, NotFound, StorageFailure
from strongbox.models import CredentialRecord, VaultRecord
from strongbox.storage import VaultStore


def vault_record(**overrides):
    fields = dict(
        salt=b"\x01" * 16,
        public_key=b"\x02" * 32,
        encrypted_private_key=b"\x03" * 48,
        private_key_nonce=b"\x04" * 24,
        opslimit=1,
        memlimit=8192,
    )
    fields.update(overrides)
    return VaultRecord(**fields)


def credential(label="github", user="alice", secret=b"\x05" * 22):
    return CredentialRecord(
        label=label,
        user=user,
        ephemeral_public_key=b"\x06" * 32,
        encrypted_secret=secret,
        secret_nonce=b"\x07" * 24
    )


class TestVaultRecord:
    """Tests for the singleton vault row."""

    def test_not_initialized(self, store):
        assert not store.is_initialized()
        with pytest.raises(NotFound):
            store.get_vault_record()

    def test_reads_do_not_create_file(self, store):
        store.is_initialized()
        with pytest.raises(NotFound):
            store.get_vault_record()

        assert not store.db_path.exists()

    def test_put_and_get(self, store):
        stored = store.put_vault_record(vault_record())

        assert store.is_initialized()
        fetched = store.get_vault_record()
        assert fetched.salt == b"\x01" * 16
        assert fetched.public_key == b"\x02" * 32
        assert fetched.encrypted_private_key == b"\x03" * 48
        assert fetched.private_key_nonce == b"\x04" * 24
        assert (fetched.opslimit, fetched.memlimit) == (1, 8192)
        assert fetched.created_at == stored.created_at
        assert fetched.created_at is not None

    def test_second_put_rejected(self, store):
        store.put_vault_record(vault_record())

        with pytest.raises(AlreadyExists):
            store.put_vault_record(vault_record(public_key=b"\x09" * 32))

        assert store.get_vault_record().public_key == b"\x02" * 32

    def test_columns_are_base64_text(self, store):
        store.put_vault_record(vault_record())

        conn = sqlite3.connect(store.db_path)
        try:
            salt, public_key = conn.execute("SELECT salt, public_key FROM vault").fetchone()
        finally:
            conn.close()

        assert salt == "AQEBAQEBAQEBAQEBAQEBAQ=="
        assert isinstance(public_key, str)


class TestCredentials:
    """Tests for credential rows."""

    def test_put_assigns_id_and_timestamps(self, store):
        stored = store.put_credential(credential())

        assert stored.id is not None
        assert stored.access_count == 0
        assert stored.accessed_at is None
        assert stored.created_at is not None
        assert stored.updated_at == stored.created_at

    def test_get_by_key_and_id(self, store):
        stored = store.put_credential(credential())

        by_key = store.get_credential("github", "alice")
        by_id = store.get_credential_by_id(stored.id)
        assert by_key == by_id
        assert by_key.encrypted_secret == b"\x05" * 22

    def test_key_is_case_sensitive(self, store):
        store.put_credential(credential())
        with pytest.raises(NotFound):
            store.get_credential("GitHub", "alice")

    def test_missing(self, store):
        with pytest.raises(NotFound):
            store.get_credential("nope", "nobody")
        with pytest.raises(NotFound):
            store.get_credential_by_id(999)

    def test_same_label_different_users(self, store):
        first = store.put_credential(credential(user="alice"))
        second = store.put_credential(credential(user="bob"))
        assert first.id != second.id
        assert len(store.list_all_credentials()) == 2

    def test_overwrite_keeps_stats(self, store):
        original = store.put_credential(credential())
        store.bump_access(original.id, 3)

        replaced = store.put_credential(credential(secret=b"\x08" * 30))

        assert replaced.id == original.id
        assert replaced.encrypted_secret == b"\x08" * 30
        assert replaced.access_count == 3
        assert replaced.accessed_at is not None
        assert replaced.created_at == original.created_at
        assert len(store.list_all_credentials()) == 1

    def test_delete(self, store):
        stored = store.put_credential(credential())
        store.delete_credential(stored.id)

        with pytest.raises(NotFound):
            store.get_credential_by_id(stored.id)

    def test_delete_missing(self, store):
        with pytest.raises(NotFound):
            store.delete_credential(42)


class TestListCredentials:
    """Tests for filtered listing."""

    @pytest.fixture
    def populated(self, store):
        for label, user in [("github", "alice"), ("gitlab", "Alice.W"), ("email", "bob"), ("bank", "carol")]:
            store.put_credential(credential(label, user))
        return store

    def test_no_filter_sorted(self, populated):
        labels = [c.label for c in populated.list_credentials()]
        assert labels == ["bank", "email", "github", "gitlab"]

    def test_label_filter(self, populated):
        labels = [c.label for c in populated.list_credentials(label_filter="GIT")]
        assert labels == ["github", "gitlab"]

    def test_user_filter_case_insensitive(self, populated):
        users = [c.user for c in populated.list_credentials(user_filter="alice")]
        assert users == ["alice", "Alice.W"]

    def test_both_filters(self, populated):
        results = populated.list_credentials(label_filter="lab", user_filter="alice")
        assert [(c.label, c.user) for c in results] == [("gitlab", "Alice.W")]

    def test_no_match(self, populated):
        assert populated.list_credentials(label_filter="zzz") == []


class TestAccessCounting:
    """Tests for access statistics."""

    def test_bump_adds_delta_and_stamps_time(self, store):
        stored = store.put_credential(credential())
        when = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)

        assert store.bump_access(stored.id, 1, when) == 1
        assert store.bump_access(stored.id, 4, when) == 5

        fetched = store.get_credential_by_id(stored.id)
        assert fetched.access_count == 5
        assert fetched.accessed_at == when

    def test_bump_does_not_touch_updated_at(self, store):
        stored = store.put_credential(credential())
        store.bump_access(stored.id, 1)
        assert store.get_credential_by_id(stored.id).updated_at == stored.updated_at

    def test_bump_missing(self, store):
        with pytest.raises(NotFound):
            store.bump_access(7, 1)

    def test_reset_when_threshold_exceeded(self, settings):
        store = VaultStore(settings.db_path, access_reset_threshold=10)
        hot = store.put_credential(credential("hot"))
        warm = store.put_credential(credential("warm"))
        cold = store.put_credential(credential("cold"))
        store.bump_access(warm.id, 6)
        store.bump_access(cold.id, 2)

        assert store.bump_access(hot.id, 10) == 10    # not above the threshold yet
        assert store.bump_access(hot.id, 1) == 1      # 11 - 10

        assert store.get_credential_by_id(warm.id).access_count == 0
        assert store.get_credential_by_id(cold.id).access_count == 0

    def test_reset_preserves_order_above_threshold(self, settings):
        store = VaultStore(settings.db_path, access_reset_threshold=10)
        first = store.put_credential(credential("first"))
        second = store.put_credential(credential("second"))
        store.bump_access(second.id, 13)

        assert store.get_credential_by_id(second.id).access_count == 3
        assert store.get_credential_by_id(first.id).access_count == 0

    def test_zero_threshold_disables_reset(self, store):
        stored = store.put_credential(credential())
        assert store.bump_access(stored.id, 10000) == 10000

    def test_explicit_reset(self, store):
        first = store.put_credential(credential("first"))
        second = store.put_credential(credential("second"))
        store.bump_access(first.id, 8)
        store.bump_access(second.id, 3)

        store.reset_access_baseline(5)

        assert store.get_credential_by_id(first.id).access_count == 3
        assert store.get_credential_by_id(second.id).access_count == 0


class TestStorageFailures:
    """Tests for file handling and corrupt data."""

    def test_file_permissions(self, store):
        store.put_credential(credential())

        assert oct(store.db_path.stat().st_mode)[-3:] == "600"
        assert oct(store.db_path.parent.stat().st_mode)[-3:] == "700"

    def test_corrupt_base64(self, store):
        stored = store.put_credential(credential())

        conn = sqlite3.connect(store.db_path)
        try:
            conn.execute("UPDATE credentials SET secret = 'not base64!' WHERE id = ?", (stored.id,))
            conn.commit()
        finally:
            conn.close()

        with pytest.raises(StorageFailure):
            store.get_credential_by_id(stored.id)

    def test_unopenable_database(self, temp_vault_dir):
        blocker = temp_vault_dir / "file"
        blocker.write_text("not a directory")
        store = VaultStore(blocker / "strongbox.db")

        with pytest.raises(StorageFailure):
            store.put_credential(credential())

    def test_not_a_database(self, temp_vault_dir):
        db_path = temp_vault_dir / "strongbox.db"
        db_path.write_bytes(b"this is not sqlite" * 100)

        with pytest.raises(StorageFailure):
            VaultStore(db_path).is_initialized()
