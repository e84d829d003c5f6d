"""``gopass`` backend for credential storage.

Credentials are stored as gopass entries of the form::

    <namespace>/<base64url(ServerURL)>/<Username>

with the secret as the entry body. The server URL is base64url-encoded
because gopass maps entries onto files and folders, so a ``/`` inside the
URL would otherwise become extra folders. An empty username is stored
under the reserved entry name ``_empty_username_``.

gopass decorates its ``ls`` output with tree glyphs and colours, so
structural queries (which identifiers exist, which username sits under one)
read the store directory directly instead of parsing that output. The store
root is whatever ``gopass config mounts.path`` reports.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from credential_helpers.backends.helper import Helper, validate_server_url
from credential_helpers.backends.runner import CommandRunner
from credential_helpers.errors import (
    BackendExecutionError,
    BackendUnavailableError,
    ConsistencyError,
    CredentialsNotFoundError,
    CredentialsValidationError,
    MissingCredentialsError,
    join_errors,
)

if TYPE_CHECKING:
    from credential_helpers.credentials import Credentials

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "docker-credential-helpers"
DEFAULT_FILE_SUFFIX = ".gpg"
# Entry name standing in for an empty username, e.g. identity-token logins
EMPTY_USERNAME_ENTRY = "_empty_username_"


# ---------------------------------------------------------------------------
# Identifier encoding
# ---------------------------------------------------------------------------

def encode_server_url(server_url: str) -> str:
    """Encode *server_url* as a single path segment (URL-safe, padded base64)."""
    return base64.urlsafe_b64encode(server_url.encode("utf-8")).decode("ascii")


def decode_server_url(encoded: str) -> str:
    """Invert :func:`encode_server_url`.

    Anything that is not exactly what :func:`encode_server_url` would have
    produced raises ``ConsistencyError``; a stray directory in the namespace
    must not be mistaken for a credential.
    """
    try:
        raw = base64.b64decode(encoded.encode("ascii"), altchars=b"-_", validate=True)
        server_url = raw.decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ConsistencyError(f"invalid server URL entry {encoded!r}: {exc}") from exc
    if not server_url or encode_server_url(server_url) != encoded:
        raise ConsistencyError(f"invalid server URL entry {encoded!r}")
    return server_url


# ---------------------------------------------------------------------------
# Read-only view of the store directory
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoreEntry:
    """A single directory entry below the namespace."""

    name: str
    is_dir: bool


class DirectoryIndex:
    """Read-only index over ``<store root>/<namespace>``.

    Parameters
    ----------
    root:
        The namespace directory. It may not exist yet.
    file_suffix:
        Extension the tool appends to every entry file.
    """

    def __init__(self, root: Path, file_suffix: str = DEFAULT_FILE_SUFFIX) -> None:
        self.root = root
        self._suffix = file_suffix

    def is_dir(self, *parts: str) -> bool:
        path = self.root.joinpath(*parts)
        try:
            return path.is_dir()
        except OSError as exc:
            raise BackendExecutionError(f"unable to stat {path}: {exc}") from exc

    def entries(self, *parts: str) -> list[StoreEntry]:
        """List the entries of a directory. A missing directory is empty."""
        path = self.root.joinpath(*parts)
        try:
            with os.scandir(path) as it:
                return sorted(
                    (StoreEntry(name=e.name, is_dir=e.is_dir()) for e in it),
                    key=lambda e: e.name,
                )
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise BackendExecutionError(f"unable to read {path}: {exc}") from exc

    def usernames(self, *parts: str) -> list[str]:
        """Entry names below an identifier directory, without the file suffix."""
        return [self._strip_suffix(e.name) for e in self.entries(*parts)]

    def _strip_suffix(self, name: str) -> str:
        if self._suffix and name.endswith(self._suffix):
            return name[: -len(self._suffix)]
        return name


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class GopassHelper(Helper):
    """Stores credentials in a gopass password store.

    Parameters
    ----------
    runner:
        Runner for the ``gopass`` executable.
    namespace:
        Top-level folder reserved for these credentials.
    file_suffix:
        Extension gopass gives entry files on disk.
    """

    name = "gopass"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        file_suffix: str = DEFAULT_FILE_SUFFIX,
    ) -> None:
        self._runner = runner or CommandRunner("gopass")
        self._namespace = namespace
        self._suffix = file_suffix
        self._init_lock = asyncio.Lock()
        self._initialized = False

    # -- initialisation ----------------------------------------------------

    async def ensure_initialized(self) -> None:
        """Probe gopass once; a failed probe is retried on the next call."""
        async with self._init_lock:
            if self._initialized:
                return
            try:
                await self._runner.run("ls", "--flat")
            except BackendExecutionError as exc:
                raise BackendUnavailableError(f"gopass is not initialized: {exc}") from exc
            self._initialized = True
            logger.debug("gopass store is initialized")

    async def check_initialized(self) -> bool:
        """Return True if gopass is usable. Cheap after the first success."""
        try:
            await self.ensure_initialized()
        except BackendUnavailableError:
            return False
        return True

    async def _gopass(self, *args: str, stdin: str = "") -> str:
        await self.ensure_initialized()
        return await self._runner.run(*args, stdin=stdin)

    # -- store layout ------------------------------------------------------

    def _entry(self, *parts: str) -> str:
        return posixpath.join(self._namespace, *parts)

    async def store_root(self) -> Path:
        """Directory gopass keeps its root mount in, with ``$VAR`` and ``~`` expanded."""
        try:
            configured = await self._gopass("config", "mounts.path")
        except BackendExecutionError as exc:
            raise BackendExecutionError(
                f"error getting gopass dir: {exc}",
                returncode=exc.returncode,
                stderr=exc.stderr,
            ) from exc
        except BackendUnavailableError as exc:
            raise BackendUnavailableError(f"error getting gopass dir: {exc}") from exc

        expanded = os.path.expandvars(configured.strip())
        try:
            return Path(expanded).expanduser()
        except RuntimeError as exc:
            raise BackendExecutionError(f"unable to get user home directory: {exc}") from exc

    async def _index(self) -> DirectoryIndex:
        root = await self.store_root()
        return DirectoryIndex(root / self._namespace, file_suffix=self._suffix)

    def _entry_name(self, username: str) -> str:
        return username or EMPTY_USERNAME_ENTRY

    def _single_entry(self, index: DirectoryIndex, encoded: str, server_url: str) -> str:
        """On-disk name of the one username entry below *encoded*."""
        names = index.usernames(encoded)
        if not names:
            raise ConsistencyError(f"no usernames for {server_url}")
        if len(names) > 1:
            raise ConsistencyError(
                f"multiple usernames for {server_url}: {', '.join(names)}"
            )
        return names[0]

    @staticmethod
    def _username(entry_name: str) -> str:
        return "" if entry_name == EMPTY_USERNAME_ENTRY else entry_name

    # -- Helper contract ---------------------------------------------------

    async def add(self, credentials: Credentials | None) -> None:
        if credentials is None:
            raise MissingCredentialsError()
        server_url = validate_server_url(credentials.server_url)
        username = credentials.username
        if "/" in username:
            raise CredentialsValidationError(
                f"username {username!r} cannot contain '/' in the gopass backend"
            )
        if username == EMPTY_USERNAME_ENTRY:
            raise CredentialsValidationError(
                f"username {username!r} is reserved in the gopass backend"
            )

        encoded = encode_server_url(server_url)
        entry_name = self._entry_name(username)
        await self._gopass("insert", "-f", self._entry(encoded, entry_name), stdin=credentials.secret)
        logger.debug("Stored credentials for %s", server_url)

        # A previous add may have used another username for this server URL.
        index = await self._index()
        stale = [name for name in index.usernames(encoded) if name != entry_name]
        errors: list[Exception] = []
        for name in stale:
            try:
                await self._gopass("rm", "-f", self._entry(encoded, name))
            except BackendExecutionError as exc:
                errors.append(exc)
        err = join_errors(errors)
        if err is not None:
            raise err

    async def delete(self, server_url: str) -> None:
        validate_server_url(server_url)
        await self._gopass("rm", "-rf", self._entry(encode_server_url(server_url)))
        logger.debug("Erased credentials for %s", server_url)

    async def get(self, server_url: str) -> tuple[str, str]:
        validate_server_url(server_url)
        index = await self._index()
        encoded = encode_server_url(server_url)

        if not index.is_dir(encoded):
            raise CredentialsNotFoundError()

        entry_name = self._single_entry(index, encoded, server_url)
        secret = await self._gopass("show", "-o", self._entry(encoded, entry_name))
        return self._username(entry_name), secret

    async def list(self) -> dict[str, str]:
        index = await self._index()
        result: dict[str, str] = {}
        for entry in index.entries():
            if not entry.is_dir:
                continue
            server_url = decode_server_url(entry.name)
            result[server_url] = self._username(self._single_entry(index, entry.name, server_url))
        return result
