"""Fernet-encrypted JSON file backend for credential storage.

Used where neither gopass nor a keychain is available. Derives an
encryption key from a passphrase using PBKDF2-HMAC-SHA256, then encrypts
the whole JSON document with Fernet. The document maps each server URL to
``{"Username": ..., "Secret": ...}``.
"""

from __future__ import annotations

import base64
import json
import os
import pathlib
from typing import TYPE_CHECKING, Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from credential_helpers.backends.helper import Helper, validate_server_url
from credential_helpers.errors import (
    BackendExecutionError,
    BackendUnavailableError,
    ConsistencyError,
    CredentialsNotFoundError,
    MissingCredentialsError,
)

if TYPE_CHECKING:
    from credential_helpers.credentials import Credentials

# Changing the salt or iteration count makes existing files unreadable.
_SALT = b"credential-helpers-file-store-v1"
_ITERATIONS = 480_000


def _derive_key(passphrase: str) -> bytes:
    """Derive a 32-byte Fernet key from the passphrase via PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SALT,
        iterations=_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class EncryptedFileHelper(Helper):
    """Stores credentials as a Fernet-encrypted JSON file on disk.

    Parameters
    ----------
    file_path:
        Path to the encrypted file. Created on first write.
    passphrase:
        Passphrase used to derive the Fernet encryption key via PBKDF2.
    """

    name = "file"

    def __init__(self, file_path: pathlib.Path, passphrase: str) -> None:
        if not passphrase:
            raise BackendUnavailableError("file backend requires a passphrase")
        self._path = file_path
        self._fernet = Fernet(_derive_key(passphrase))

    def _read_store(self) -> dict[str, dict[str, Any]]:
        """Read and decrypt the file. Returns an empty dict if missing."""
        try:
            ciphertext = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise BackendExecutionError(f"unable to read {self._path}: {exc}") from exc
        try:
            plaintext = self._fernet.decrypt(ciphertext)
        except InvalidToken:
            raise BackendExecutionError(
                f"unable to decrypt {self._path}: wrong passphrase or corrupted file"
            ) from None
        data = json.loads(plaintext)
        if not isinstance(data, dict):
            raise ConsistencyError(f"{self._path} does not hold a credential mapping")
        return data

    def _write_store(self, data: dict[str, dict[str, Any]]) -> None:
        """Encrypt and write the document, readable by the owner only."""
        plaintext = json.dumps(data, sort_keys=True).encode("utf-8")
        ciphertext = self._fernet.encrypt(plaintext)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(ciphertext)
            os.chmod(self._path, 0o600)
        except OSError as exc:
            raise BackendExecutionError(f"unable to write {self._path}: {exc}") from exc

    async def add(self, credentials: Credentials | None) -> None:
        if credentials is None:
            raise MissingCredentialsError()
        server_url = validate_server_url(credentials.server_url)
        store = self._read_store()
        store[server_url] = {"Username": credentials.username, "Secret": credentials.secret}
        self._write_store(store)

    async def delete(self, server_url: str) -> None:
        validate_server_url(server_url)
        store = self._read_store()
        if store.pop(server_url, None) is not None:
            self._write_store(store)

    async def get(self, server_url: str) -> tuple[str, str]:
        validate_server_url(server_url)
        entry = self._read_store().get(server_url)
        if entry is None:
            raise CredentialsNotFoundError()
        try:
            return entry["Username"], entry["Secret"]
        except (KeyError, TypeError) as exc:
            raise ConsistencyError(f"malformed entry for {server_url}") from exc

    async def list(self) -> dict[str, str]:
        servers: dict[str, str] = {}
        for server_url, entry in self._read_store().items():
            if not isinstance(entry, dict) or "Username" not in entry:
                raise ConsistencyError(f"malformed entry for {server_url}")
            servers[server_url] = entry["Username"]
        return servers
