"""macOS Keychain backend for credential storage.

Wraps the macOS ``security`` CLI tool. Each credential is a generic
password whose service is ``<namespace>:<ServerURL>`` and whose account is
the username, so ``dump-keychain`` output can be filtered down to the
items this helper owns.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from credential_helpers.backends.helper import Helper, validate_server_url
from credential_helpers.backends.runner import CommandResult, CommandRunner
from credential_helpers.errors import (
    BackendExecutionError,
    ConsistencyError,
    CredentialsNotFoundError,
    CredentialsValidationError,
    MissingCredentialsError,
)

if TYPE_CHECKING:
    from credential_helpers.credentials import Credentials

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "docker-credential-helpers"

# Exit code when an item is not found in Keychain
_ERR_ITEM_NOT_FOUND = 44
# Upper bound on duplicate items removed by a single delete
_MAX_DELETE_PASSES = 32

_ACCOUNT_RE = re.compile(r'"acct"<blob>="(.*)"')
_SERVICE_RE = re.compile(r'"svce"<blob>="(.*)"')
_PASSWORD_RE = re.compile(r'^password:\s*(?:0x([0-9A-Fa-f]+)\s*)?(?:"(.*)")?\s*$', re.MULTILINE)


def _raise_for(result: CommandResult, action: str) -> None:
    stderr = result.stderr.strip()
    raise BackendExecutionError(
        f"security {action} failed with exit status {result.returncode}: {stderr}",
        returncode=result.returncode,
        stderr=stderr,
    )


def _quote(value: str) -> str:
    """Quote *value* as one word of a ``security -i`` command line."""
    if "\n" in value or "\r" in value:
        raise CredentialsValidationError("keychain attributes cannot contain line breaks")
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_password(stderr: str) -> str:
    """Extract the password ``find-generic-password -g`` prints to stderr.

    Non-ASCII passwords are printed as hex followed by a quoted rendering;
    the hex form is authoritative.
    """
    match = _PASSWORD_RE.search(stderr)
    if match is None:
        raise BackendExecutionError("security did not print a password")
    hex_value, quoted = match.groups()
    if hex_value:
        return bytes.fromhex(hex_value).decode("utf-8", errors="replace")
    return quoted or ""


def parse_dump(output: str, prefix: str) -> list[tuple[str, str]]:
    """Return ``(service, account)`` pairs for services starting with *prefix*."""
    items: list[tuple[str, str]] = []
    service: str | None = None
    account: str | None = None

    def flush() -> None:
        if service is not None and service.startswith(prefix):
            items.append((service, account or ""))

    for line in output.splitlines():
        if line.startswith("keychain:"):
            flush()
            service = account = None
            continue
        svce = _SERVICE_RE.search(line)
        if svce:
            service = svce.group(1)
            continue
        acct = _ACCOUNT_RE.search(line)
        if acct:
            account = acct.group(1)
    flush()
    return items


class KeychainHelper(Helper):
    """Stores credentials in macOS Keychain via the ``security`` CLI.

    Parameters
    ----------
    runner:
        Runner for the ``security`` executable.
    namespace:
        Prefix for the service attribute of every item.
    """

    name = "osxkeychain"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._runner = runner or CommandRunner("security")
        self._prefix = f"{namespace}:"

    def _service(self, server_url: str) -> str:
        return f"{self._prefix}{server_url}"

    async def add(self, credentials: Credentials | None) -> None:
        if credentials is None:
            raise MissingCredentialsError()
        server_url = validate_server_url(credentials.server_url)

        # The secret reaches security on stdin, hex-encoded, never in argv.
        if credentials.secret:
            password = f"-X {credentials.secret.encode('utf-8').hex()}"
        else:
            password = '-w ""'
        command = (
            f"add-generic-password -s {_quote(self._service(server_url))}"
            f" -a {_quote(credentials.username)} {password} -U\n"
        )

        # One username per server URL: drop whatever is there first.
        await self.delete(server_url)
        result = await self._runner.execute("-i", stdin=command)
        # Interactive mode can exit 0 after a failed command; stderr tells.
        if result.returncode != 0 or result.stderr.strip():
            _raise_for(result, "add-generic-password")

    async def delete(self, server_url: str) -> None:
        service = self._service(validate_server_url(server_url))
        for _ in range(_MAX_DELETE_PASSES):
            result = await self._runner.execute("delete-generic-password", "-s", service)
            if result.returncode == _ERR_ITEM_NOT_FOUND:
                return
            if result.returncode != 0:
                _raise_for(result, "delete-generic-password")
        raise BackendExecutionError(f"too many keychain items for {server_url}")

    async def get(self, server_url: str) -> tuple[str, str]:
        service = self._service(validate_server_url(server_url))
        result = await self._runner.execute("find-generic-password", "-s", service, "-g")
        if result.returncode == _ERR_ITEM_NOT_FOUND:
            raise CredentialsNotFoundError()
        if result.returncode != 0:
            _raise_for(result, "find-generic-password")

        # Attributes go to stdout, the password to stderr:
        #   password: "thevalue"
        account = _ACCOUNT_RE.search(result.stdout)
        return (account.group(1) if account else ""), parse_password(result.stderr)

    async def list(self) -> dict[str, str]:
        result = await self._runner.execute("dump-keychain")
        if result.returncode != 0:
            _raise_for(result, "dump-keychain")

        servers: dict[str, str] = {}
        for service, account in parse_dump(result.stdout, self._prefix):
            server_url = service[len(self._prefix):]
            if not server_url:
                continue
            if server_url in servers:
                raise ConsistencyError(f"multiple usernames for {server_url}")
            servers[server_url] = account
        return servers
