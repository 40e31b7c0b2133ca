"""
Secure credential store.

Provider API keys and webhook secrets are stored encrypted with
AES-256-CBC. The key is derived from a master secret with PBKDF2-SHA256
and a random per-value salt. Consumers only see the namespaced
``get/set/has/delete`` contract.
"""

import base64
import logging
import os
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from syncwire.storage.database import Database, to_db_time, utc_now

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
IV_LENGTH = 16
KEY_LENGTH = 32
MIN_MASTER_KEY_LENGTH = 16
DEFAULT_ITERATIONS = 100_000


class CredentialError(Exception):
    """Raised when the credential store cannot be used."""


@runtime_checkable
class CredentialStore(Protocol):
    """Namespaced secret storage contract."""

    def get(self, namespace: str, key: str) -> str | None: ...

    def set(self, namespace: str, key: str, value: str) -> bool: ...

    def has(self, namespace: str, key: str) -> bool: ...

    def delete(self, namespace: str, key: str) -> bool: ...


class EncryptedCredentialStore:
    """
    Credential store backed by the ``secure_credentials`` table.

    Example:
        store = EncryptedCredentialStore(db, master_key=os.environ["SYNCWIRE_MASTER_KEY"])
        store.set("integrations_linear", "api_key", "lin_api_...")
        store.get("integrations_linear", "api_key")
    """

    def __init__(
        self,
        db: Database,
        master_key: str,
        iterations: int = DEFAULT_ITERATIONS,
    ):
        if not master_key or len(master_key) < MIN_MASTER_KEY_LENGTH:
            raise CredentialError(
                f"Master key must be at least {MIN_MASTER_KEY_LENGTH} characters"
            )
        self.db = db
        self._master_key = master_key.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt to base64(salt || iv || ciphertext)."""
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._derive_key(salt)), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(salt + iv + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Raises:
            CredentialError: if the token is malformed or the key is wrong.
        """
        try:
            raw = base64.b64decode(token, validate=True)
        except (ValueError, TypeError) as e:
            raise CredentialError("Stored credential is not valid base64") from e

        if len(raw) <= SALT_LENGTH + IV_LENGTH:
            raise CredentialError("Stored credential is truncated")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        ciphertext = raw[SALT_LENGTH + IV_LENGTH:]

        decryptor = Cipher(algorithms.AES(self._derive_key(salt)), modes.CBC(iv)).decryptor()
        try:
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise CredentialError("Unable to decrypt credential (wrong master key?)") from e

    # =========================================================================
    # STORE CONTRACT
    # =========================================================================

    def get(self, namespace: str, key: str) -> str | None:
        with self.db.cursor() as cursor:
            cursor.execute(
                "SELECT value FROM secure_credentials WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return self.decrypt(row["value"])

    def set(self, namespace: str, key: str, value: str) -> bool:
        value = (value or "").strip()
        if not value:
            return False
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO secure_credentials (namespace, key, value, updated_at)
                VALUES (?, ?, ?, ?)
            """,
                (namespace, key, self.encrypt(value), to_db_time(utc_now())),
            )
        logger.info(f"Stored credential {namespace}/{key}")
        return True

    def has(self, namespace: str, key: str) -> bool:
        with self.db.cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM secure_credentials WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            return cursor.fetchone() is not None

    def delete(self, namespace: str, key: str) -> bool:
        with self.db.cursor() as cursor:
            cursor.execute(
                "DELETE FROM secure_credentials WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted credential {namespace}/{key}")
        return deleted
