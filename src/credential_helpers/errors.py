"""Error taxonomy shared by the dispatcher and every backend.

Callers that only see a helper's stderr can still recognise the
not-found condition with :func:`is_credentials_not_found_message`.
"""

from __future__ import annotations

from typing import Iterable

CREDENTIALS_NOT_FOUND_MESSAGE = "credentials not found in native keychain"
MISSING_SERVER_URL_MESSAGE = "no credentials server URL"
MISSING_USERNAME_MESSAGE = "no credentials username"


class CredentialHelperError(Exception):
    """Base exception for every failure surfaced to the caller."""


# ---------------------------------------------------------------------------
# Input validation -- never reaches the backend
# ---------------------------------------------------------------------------

class CredentialsValidationError(CredentialHelperError):
    """Raised when a request is rejected before the backend is consulted."""


class MissingServerURLError(CredentialsValidationError):
    def __init__(self) -> None:
        super().__init__(MISSING_SERVER_URL_MESSAGE)


class MissingUsernameError(CredentialsValidationError):
    def __init__(self) -> None:
        super().__init__(MISSING_USERNAME_MESSAGE)


class MissingCredentialsError(CredentialsValidationError):
    def __init__(self) -> None:
        super().__init__("missing credentials")


class CredentialsDecodeError(CredentialsValidationError):
    """Raised when a ``store`` payload is not a valid credentials object."""


class UnknownActionError(CredentialHelperError):
    def __init__(self, action: str) -> None:
        super().__init__(f"unknown credential action: {action}")
        self.action = action


# ---------------------------------------------------------------------------
# Backend outcomes
# ---------------------------------------------------------------------------

class CredentialsNotFoundError(CredentialHelperError):
    """Raised by ``get`` when nothing is stored for the identifier."""

    def __init__(self) -> None:
        super().__init__(CREDENTIALS_NOT_FOUND_MESSAGE)


class BackendUnavailableError(CredentialHelperError):
    """Raised when the backend's readiness probe fails."""


class BackendExecutionError(CredentialHelperError):
    """Raised when the external tool or the filesystem reports a failure.

    ``returncode`` and ``stderr`` are kept when the failure came from a
    subprocess so callers can inspect the tool's own diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ConsistencyError(CredentialHelperError):
    """Raised when stored data violates the one-username-per-identifier layout."""


class JoinedError(CredentialHelperError):
    """Several independent failures reported as one."""

    def __init__(self, errors: list[Exception]) -> None:
        super().__init__("\n".join(str(err) for err in errors))
        self.errors = errors


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_credentials_not_found(err: BaseException | None) -> bool:
    """Return True if *err* is the distinguished not-found error."""
    return isinstance(err, CredentialsNotFoundError)


def is_credentials_not_found_message(message: str) -> bool:
    """Return True if *message* is the text a helper prints for not-found."""
    return message.strip() == CREDENTIALS_NOT_FOUND_MESSAGE


def join_errors(errors: Iterable[Exception]) -> Exception | None:
    """Combine *errors* into a single exception, or None when there are none."""
    collected = [err for err in errors if err is not None]
    if not collected:
        return None
    if len(collected) == 1:
        return collected[0]
    return JoinedError(collected)
