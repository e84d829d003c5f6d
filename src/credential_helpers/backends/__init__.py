"""Available credential backends."""

from .encrypted_file import EncryptedFileHelper
from .gopass import GopassHelper
from .helper import Helper
from .keychain import KeychainHelper

# Registry of available backends
BACKENDS: dict[str, type[Helper]] = {
    "gopass": GopassHelper,
    "osxkeychain": KeychainHelper,
    "keychain": KeychainHelper,  # Alias
    "file": EncryptedFileHelper,
}

__all__ = ["BACKENDS", "EncryptedFileHelper", "GopassHelper", "Helper", "KeychainHelper"]
