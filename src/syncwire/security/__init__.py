"""Signature codec and encrypted credential storage."""

from syncwire.security.credentials import (
    CredentialError,
    CredentialStore,
    EncryptedCredentialStore,
)
from syncwire.security.signature import (
    SIGNATURE_PREFIX,
    find_signature,
    sign,
    sign_header,
    verify,
)

__all__ = [
    "CredentialError",
    "CredentialStore",
    "EncryptedCredentialStore",
    "SIGNATURE_PREFIX",
    "find_signature",
    "sign",
    "sign_header",
    "verify",
]
