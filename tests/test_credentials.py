"""Tests for the encrypted credential store."""

import pytest

from syncwire.security import CredentialError, CredentialStore, EncryptedCredentialStore

from conftest import MASTER_KEY, MemoryCredentialStore

FAST = 1_000


@pytest.fixture
def store(db):
    return EncryptedCredentialStore(db, master_key=MASTER_KEY, iterations=FAST)


class TestEncryptedCredentialStore:
    """Tests for encrypted storage."""

    def test_set_get(self, store):
        assert store.set("integrations_linear", "api_key", " lin_api_123 ")
        assert store.get("integrations_linear", "api_key") == "lin_api_123"
        assert store.has("integrations_linear", "api_key")

    def test_value_encrypted_at_rest(self, store, db):
        store.set("integrations_notion", "api_key", "secret_abc")
        with db.cursor() as cursor:
            cursor.execute("SELECT value FROM secure_credentials")
            raw = cursor.fetchone()["value"]
        assert "secret_abc" not in raw

    def test_random_salt_per_value(self, store):
        assert store.encrypt("same") != store.encrypt("same")

    def test_empty_value_not_stored(self, store):
        assert store.set("ns", "key", "   ") is False
        assert store.has("ns", "key") is False

    def test_missing_returns_none(self, store):
        assert store.get("ns", "missing") is None

    def test_delete(self, store):
        store.set("ns", "key", "value")
        assert store.delete("ns", "key") is True
        assert store.delete("ns", "key") is False
        assert store.get("ns", "key") is None

    def test_short_master_key(self, db):
        with pytest.raises(CredentialError):
            EncryptedCredentialStore(db, master_key="short")

    def test_wrong_master_key(self, store, db):
        store.set("ns", "key", "value")
        other = EncryptedCredentialStore(db, master_key="another-master-key-xyz", iterations=FAST)
        with pytest.raises(CredentialError):
            other.get("ns", "key")

    def test_malformed_token(self, store):
        with pytest.raises(CredentialError):
            store.decrypt("!!!not base64!!!")
        with pytest.raises(CredentialError):
            store.decrypt("YWJj")

    def test_protocol(self, store):
        assert isinstance(store, CredentialStore)
        assert isinstance(MemoryCredentialStore(), CredentialStore)
