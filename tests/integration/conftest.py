# tests/integration/conftest.py
import pathlib
import shutil
import stat

import pytest

# Minimal stand-in for the gopass CLI: entries are plain files under
# $FAKE_GOPASS_ROOT, laid out the way gopass lays out its store.
FAKE_GOPASS = """#!/bin/sh
root="$FAKE_GOPASS_ROOT"
case "$1" in
  ls) exit 0 ;;
  config) printf '%s\\n' "$root" ;;
  insert) mkdir -p "$(dirname "$root/$3")" && cat > "$root/$3.gpg" ;;
  show) cat "$root/$3.gpg" ;;
  rm)
    if [ "$2" = "-rf" ]; then rm -rf "$root/$3"; else rm -f "$root/$3.gpg"; fi ;;
  *) echo "unknown command: $1" >&2; exit 1 ;;
esac
"""


@pytest.fixture
def fake_gopass(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Install a fake gopass binary and point the configuration at it.

    Returns the store root the fake keeps its entries under.
    """
    if shutil.which("sh") is None:
        pytest.skip("requires a POSIX shell")
    script = tmp_path / "bin" / "gopass"
    script.parent.mkdir()
    script.write_text(FAKE_GOPASS)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    store = tmp_path / "store"
    store.mkdir()
    monkeypatch.setenv("FAKE_GOPASS_ROOT", str(store))
    monkeypatch.setenv("CREDENTIAL_HELPERS_GOPASS__BINARY", str(script))
    return store
