"""Shared test fixtures for the credential helper tests."""

import pathlib

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path) -> None:
    """Keep a developer's own config file and environment out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("CREDENTIAL_HELPERS_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("CREDENTIAL_HELPERS_CONFIG_FILE", str(tmp_path / "absent-config.yaml"))
