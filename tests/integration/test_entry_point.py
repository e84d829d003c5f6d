"""Integration tests for the process entry point against a fake gopass CLI."""

from __future__ import annotations

import io
import json
import pathlib

import pytest

from credential_helpers.__main__ import create_helper, main
from credential_helpers.backends.encrypted_file import EncryptedFileHelper
from credential_helpers.backends.gopass import GopassHelper, encode_server_url
from credential_helpers.backends.keychain import KeychainHelper
from credential_helpers.config import Settings
from credential_helpers.errors import CredentialHelperError


def invoke(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    action: str,
    payload: str = "",
    backend: str | None = "gopass",
) -> tuple[int, str, str]:
    monkeypatch.setattr("sys.stdin", io.StringIO(payload))
    status = main(backend=backend, argv=[action])
    captured = capsys.readouterr()
    return status, captured.out, captured.err


class TestGopassEntryPoint:
    """Drive a whole store/get/list/erase session through main()."""

    def test_full_session(
        self,
        fake_gopass: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        status, out, err = invoke(monkeypatch, capsys, "list")
        assert (status, out, err) == (0, "{}\n", "")

        payload = json.dumps(
            {"ServerURL": "https://registry.example.com/v2", "Username": "alice", "Secret": "s3cr3t"}
        )
        assert invoke(monkeypatch, capsys, "store", payload)[0] == 0

        entry = (
            fake_gopass
            / "docker-credential-helpers"
            / encode_server_url("https://registry.example.com/v2")
            / "alice.gpg"
        )
        assert entry.read_text() == "s3cr3t"

        status, out, _ = invoke(monkeypatch, capsys, "get", "https://registry.example.com/v2\n")
        assert status == 0
        assert json.loads(out) == {
            "ServerURL": "https://registry.example.com/v2",
            "Username": "alice",
            "Secret": "s3cr3t",
        }

        status, out, _ = invoke(monkeypatch, capsys, "list")
        assert status == 0
        assert json.loads(out) == {"https://registry.example.com/v2": "alice"}

        assert invoke(monkeypatch, capsys, "erase", "https://registry.example.com/v2")[0] == 0

        status, out, err = invoke(monkeypatch, capsys, "get", "https://registry.example.com/v2")
        assert status == 1
        assert out == ""
        assert err.strip() == "credentials not found in native keychain"

    def test_username_change_replaces_entry(
        self,
        fake_gopass: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        for username in ("alice", "bob"):
            payload = json.dumps(
                {"ServerURL": "https://example.com", "Username": username, "Secret": username}
            )
            assert invoke(monkeypatch, capsys, "store", payload)[0] == 0

        directory = fake_gopass / "docker-credential-helpers" / encode_server_url("https://example.com")
        assert sorted(p.name for p in directory.iterdir()) == ["bob.gpg"]

    def test_identity_token_without_username(
        self,
        fake_gopass: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        payload = json.dumps({"ServerURL": "https://example.com", "Username": "", "Secret": "tok"})
        assert invoke(monkeypatch, capsys, "store", payload) == (0, "", "")

        status, out, _ = invoke(monkeypatch, capsys, "get", "https://example.com")
        assert status == 0
        assert json.loads(out) == {"ServerURL": "https://example.com", "Username": "", "Secret": "tok"}

    def test_store_without_server_url(
        self,
        fake_gopass: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        status, _, err = invoke(monkeypatch, capsys, "store", '{"Username": "alice"}')
        assert status == 1
        assert err.strip() == "no credentials server URL"
        assert not (fake_gopass / "docker-credential-helpers").exists()

    def test_unknown_action(
        self,
        fake_gopass: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        status, out, err = invoke(monkeypatch, capsys, "rotate")
        assert status == 1
        assert out == ""
        assert "unknown credential action: rotate" in err

    def test_missing_binary_is_reported(
        self,
        tmp_path: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("CREDENTIAL_HELPERS_GOPASS__BINARY", str(tmp_path / "no-gopass"))
        status, out, err = invoke(monkeypatch, capsys, "list")
        assert status == 1
        assert out == ""
        assert "gopass is not initialized" in err


class TestMain:

    def test_version_names_the_script(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(backend="gopass", argv=["version"]) == 0
        assert capsys.readouterr().out.startswith("docker-credential-gopass (credential-helpers) ")

    def test_module_invocation_uses_configured_backend(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(argv=["--version"]) == 0
        assert capsys.readouterr().out.startswith("python -m credential_helpers ")

    def test_no_action_prints_usage(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(backend="gopass", argv=[]) == 1
        assert "Usage:" in capsys.readouterr().err

    def test_unknown_backend(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("CREDENTIAL_HELPERS_BACKEND", "pass")
        assert main(argv=["list"]) == 1
        assert "unknown credential backend: pass" in capsys.readouterr().err

    def test_file_backend_without_passphrase(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(backend="file", argv=["list"]) == 1
        assert "passphrase" in capsys.readouterr().err

    def test_file_backend_session(
        self,
        tmp_path: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("CREDENTIAL_HELPERS_FILE__PATH", str(tmp_path / "creds.enc"))
        monkeypatch.setenv("CREDENTIAL_HELPERS_FILE__PASSPHRASE", "pw")
        payload = json.dumps({"ServerURL": "https://x", "Username": "u", "Secret": "s"})
        assert invoke(monkeypatch, capsys, "store", payload, backend="file")[0] == 0
        status, out, _ = invoke(monkeypatch, capsys, "get", "https://x", backend="file")
        assert status == 0
        assert json.loads(out)["Secret"] == "s"

    def test_invalid_configuration(
        self,
        tmp_path: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        config = tmp_path / "config.yaml"
        config.write_text("gopass: [not, a, mapping]\n")
        monkeypatch.setenv("CREDENTIAL_HELPERS_CONFIG_FILE", str(config))
        assert main(backend="gopass", argv=["list"]) == 1
        assert "invalid configuration" in capsys.readouterr().err


    def test_unknown_log_level(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("CREDENTIAL_HELPERS_LOGGING__LEVEL", "VERBOSE")
        assert main(backend="gopass", argv=["list"]) == 1
        assert "invalid configuration" in capsys.readouterr().err

    def test_boolean_looking_passphrase(
        self,
        tmp_path: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("CREDENTIAL_HELPERS_FILE__PATH", str(tmp_path / "creds.enc"))
        monkeypatch.setenv("CREDENTIAL_HELPERS_FILE__PASSPHRASE", "true")
        assert invoke(monkeypatch, capsys, "list", backend="file") == (0, "{}\n", "")


class TestCreateHelper:

    @pytest.mark.parametrize(
        ("backend", "expected"),
        [
            ("gopass", GopassHelper),
            ("osxkeychain", KeychainHelper),
            ("keychain", KeychainHelper),
        ],
    )
    def test_builds_registered_backends(self, backend: str, expected: type) -> None:
        assert isinstance(create_helper(Settings(), backend), expected)

    def test_builds_file_backend(self, tmp_path: pathlib.Path) -> None:
        settings = Settings(file={"path": str(tmp_path / "c.enc"), "passphrase": "pw"})
        assert isinstance(create_helper(settings, "file"), EncryptedFileHelper)

    def test_unknown_backend(self) -> None:
        with pytest.raises(CredentialHelperError):
            create_helper(Settings(), "nope")
