"""Credential helpers -- store, get, erase and list registry credentials in native stores."""

from importlib import metadata as _metadata
from pathlib import Path as _Path

_DISTRIBUTION = "credential-helpers"


def _read_version() -> str:
    """Version from the checkout's VERSION file, else from the installed metadata."""
    for parent in _Path(__file__).resolve().parents:
        candidate = parent / "VERSION"
        if candidate.is_file():
            return candidate.read_text().strip()
    try:
        return _metadata.version(_DISTRIBUTION)
    except _metadata.PackageNotFoundError:
        return "0.0.0"

__version__ = _read_version()
