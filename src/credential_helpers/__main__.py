"""Credential helpers -- entry point.

Usage::

    python -m credential_helpers <store|get|erase|list|version>
    docker-credential-gopass <store|get|erase|list|version>

The ``python -m`` form uses the backend named in the configuration; each
``docker-credential-*`` script is pinned to one backend.

Startup sequence:
    1. Load configuration from YAML (or defaults) and the environment
    2. Configure logging on stderr
    3. Build the backend
    4. Dispatch the single action and exit with its status
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError

from credential_helpers.backends import BACKENDS
from credential_helpers.backends.encrypted_file import EncryptedFileHelper
from credential_helpers.backends.gopass import GopassHelper
from credential_helpers.backends.helper import Helper
from credential_helpers.backends.keychain import KeychainHelper
from credential_helpers.backends.runner import CommandRunner
from credential_helpers.config import Settings, load_settings
from credential_helpers.credentials import fail, serve
from credential_helpers.errors import CredentialHelperError

logger = logging.getLogger("credential_helpers")


def configure_logging(settings: Settings) -> None:
    """Send log records to stderr; stdout is reserved for protocol output."""
    logging.basicConfig(
        level=settings.logging.level.upper(),
        format=settings.logging.format,
        stream=sys.stderr,
    )


def create_helper(settings: Settings, backend: str | None = None) -> Helper:
    """Create the backend named *backend* (or ``settings.backend``)."""
    name = backend or settings.backend
    helper_class = BACKENDS.get(name)
    if helper_class is None:
        raise CredentialHelperError(f"unknown credential backend: {name}")

    if helper_class is GopassHelper:
        cfg = settings.gopass
        return GopassHelper(
            runner=CommandRunner(cfg.binary, timeout=cfg.command_timeout),
            namespace=cfg.namespace,
            file_suffix=cfg.file_suffix,
        )
    if helper_class is KeychainHelper:
        cfg = settings.keychain
        return KeychainHelper(
            runner=CommandRunner(cfg.binary, timeout=cfg.command_timeout),
            namespace=cfg.namespace,
        )
    if helper_class is EncryptedFileHelper:
        return EncryptedFileHelper(
            file_path=Path(settings.file.path).expanduser(),
            passphrase=settings.file.passphrase,
        )
    return helper_class()


def main(backend: str | None = None, argv: list[str] | None = None) -> int:
    """Load settings, build the backend and serve one action.

    Returns the process exit status.
    """
    try:
        settings = load_settings()
    except (ValidationError, yaml.YAMLError, OSError) as exc:
        return fail(f"invalid configuration: {exc}")
    configure_logging(settings)

    try:
        helper = create_helper(settings, backend)
    except CredentialHelperError as exc:
        return fail(str(exc))

    program = None if backend else "python -m credential_helpers"
    return serve(helper, argv, program=program)


# ---------------------------------------------------------------------------
# Script entry points, one per backend
# ---------------------------------------------------------------------------


def gopass() -> None:
    sys.exit(main(backend="gopass"))


def osxkeychain() -> None:
    sys.exit(main(backend="osxkeychain"))


def file() -> None:
    sys.exit(main(backend="file"))


if __name__ == "__main__":
    sys.exit(main())
