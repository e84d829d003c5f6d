"""Abstract interface every credential backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from credential_helpers.errors import MissingServerURLError

if TYPE_CHECKING:
    from credential_helpers.credentials import Credentials


class Helper(ABC):
    """Abstract credential helper. Implementations provide the native storage.

    All methods are async so subprocess-based backends (``gopass``,
    the macOS ``security`` CLI) and file-based backends share one contract.
    The dispatcher depends on nothing else.
    """

    name: str = "base"

    @abstractmethod
    async def add(self, credentials: Credentials | None) -> None:
        """Store *credentials*, replacing anything held for the same server URL."""

    @abstractmethod
    async def delete(self, server_url: str) -> None:
        """Remove everything stored for *server_url*."""

    @abstractmethod
    async def get(self, server_url: str) -> tuple[str, str]:
        """Return ``(username, secret)`` for *server_url*.

        Raises ``CredentialsNotFoundError`` when nothing is stored.
        """

    @abstractmethod
    async def list(self) -> dict[str, str]:
        """Return a mapping of every stored server URL to its username."""


def validate_server_url(server_url: str | None) -> str:
    """Reject empty identifiers before any backend call is made."""
    if not server_url:
        raise MissingServerURLError()
    return server_url
