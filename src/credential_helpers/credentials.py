"""Credential record and the stdin/stdout protocol dispatcher.

A helper process is invoked as ``<program> <action>`` and handles exactly
one action:

=======  ==================================  ==========================================
action   stdin                               stdout on success
=======  ==================================  ==========================================
store    ``{"ServerURL", "Username",         nothing
         "Secret"}``
get      the server URL                      ``{"ServerURL", "Username", "Secret"}``
erase    the server URL                      nothing
list     nothing                             ``{"<ServerURL>": "<Username>", ...}``
=======  ==================================  ==========================================

Failures print a message on stderr and exit with status 1. A missing
credential on ``get`` always prints ``credentials not found in native
keychain`` so callers can tell "absent" from "broken".
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, TextIO

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from credential_helpers import __version__
from credential_helpers.errors import (
    CredentialHelperError,
    CredentialsDecodeError,
    MissingServerURLError,
    UnknownActionError,
)

if TYPE_CHECKING:
    from credential_helpers.backends.helper import Helper

logger = logging.getLogger(__name__)

PACKAGE = "credential-helpers"
ACTIONS = ("store", "get", "erase", "list")


class Credentials(BaseModel):
    """A server URL together with the username and secret stored for it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    server_url: str = Field(default="", alias="ServerURL")
    username: str = Field(default="", alias="Username")
    secret: str = Field(default="", alias="Secret")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def _read_server_url(stdin: TextIO) -> str:
    server_url = stdin.read().strip()
    if not server_url:
        raise MissingServerURLError()
    return server_url


async def store(helper: Helper, stdin: TextIO) -> None:
    """Decode a credentials object from *stdin* and hand it to the helper."""
    payload = stdin.read()
    try:
        credentials = Credentials.model_validate_json(payload)
    except ValidationError as exc:
        raise CredentialsDecodeError(f"invalid credentials payload: {exc}") from exc
    if not credentials.server_url:
        raise MissingServerURLError()
    await helper.add(credentials)


async def get(helper: Helper, stdin: TextIO, stdout: TextIO) -> None:
    """Look up the server URL read from *stdin* and print its credentials."""
    server_url = _read_server_url(stdin)
    username, secret = await helper.get(server_url)
    found = Credentials(server_url=server_url, username=username, secret=secret)
    stdout.write(found.to_json() + "\n")


async def erase(helper: Helper, stdin: TextIO) -> None:
    """Remove the credentials for the server URL read from *stdin*."""
    await helper.delete(_read_server_url(stdin))


async def list_credentials(helper: Helper, stdout: TextIO) -> None:
    """Print every stored server URL with its username."""
    servers = await helper.list()
    stdout.write(json.dumps(servers) + "\n")


async def handle_command(
    helper: Helper,
    action: str,
    stdin: TextIO,
    stdout: TextIO,
) -> None:
    """Run a single protocol action against *helper*."""
    logger.debug("Handling %s with %s backend", action, helper.name)
    if action == "store":
        await store(helper, stdin)
    elif action == "get":
        await get(helper, stdin, stdout)
    elif action == "erase":
        await erase(helper, stdin)
    elif action == "list":
        await list_credentials(helper, stdout)
    else:
        raise UnknownActionError(action)


# ---------------------------------------------------------------------------
# Process driver
# ---------------------------------------------------------------------------

def usage(program: str) -> str:
    return f"Usage: {program} <{'|'.join(ACTIONS)}|version>"


def version_string(program: str) -> str:
    return f"{program} ({PACKAGE}) {__version__}"


def fail(message: str, stderr: TextIO | None = None) -> int:
    """Write *message* to stderr and return the failure exit status."""
    print(message, file=stderr or sys.stderr)
    return 1


def serve(
    helper: Helper,
    argv: list[str] | None = None,
    *,
    program: str | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Dispatch the action named in *argv* and return the exit status.

    Parameters
    ----------
    helper:
        Backend to run the action against.
    argv:
        Argument list. Defaults to ``sys.argv[1:]`` when ``None``.
    program:
        Name shown in usage and version output.
    """
    args = sys.argv[1:] if argv is None else argv
    program = program or f"docker-credential-{helper.name}"
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    if not args:
        return fail(usage(program), stderr)

    action = args[0]
    if action in ("version", "--version", "-v"):
        print(version_string(program), file=stdout)
        return 0
    if action in ("--help", "-h"):
        print(usage(program), file=stdout)
        return 0

    try:
        asyncio.run(handle_command(helper, action, stdin, stdout))
    except CredentialHelperError as exc:
        logger.debug("%s failed", action, exc_info=True)
        return fail(str(exc), stderr)
    except Exception as exc:
        logger.debug("%s failed unexpectedly", action, exc_info=True)
        return fail(str(exc) or type(exc).__name__, stderr)
    return 0
