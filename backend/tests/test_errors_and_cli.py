"""
Tests for error payloads and the command line interface
"""
import pytest

from pdpgate import cli
from pdpgate.core.errors import (ConfirmationTimeoutError,
                                 InputValidationError, OutputParseError,
                                 ToolInvocationError)
from pdpgate.services import pdp_backend


def test_tool_error_payload_uses_raw_output():
    error = ToolInvocationError("upload-file", output=b"  disk full\n", returncode=2)
    assert error.to_dict() == {
        "error": "disk full",
        "details": {"reason": "upload-file failed", "subcommand": "upload-file", "returncode": 2},
    }


def test_parse_error_without_output_uses_message():
    assert OutputParseError("root CID").to_dict()["error"] == "could not determine root CID"


def test_validation_error_payload():
    error = InputValidationError("file is required")
    assert error.status_code == 400
    assert error.to_dict() == {"error": "file is required"}


def test_confirmation_timeout_shows_message():
    error = ConfirmationTimeoutError("proof set creation", 900, output="ProofSet Created: false")
    assert error.to_dict()["error"].startswith("timed out waiting for proof set creation confirmation")


@pytest.fixture
def cli_backend(fake_backend, monkeypatch):
    monkeypatch.setattr(pdp_backend, "_backend", fake_backend)
    return fake_backend


def test_cli_ping(cli_backend, capsys):
    cli_backend.on("ping", "pong\n")
    assert cli.main(["ping", "--service-url", "u", "--service-name", "n"]) == 0
    assert capsys.readouterr().out.strip() == "pong"


def test_cli_ping_retries_until_reachable(cli_backend, capsys, monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("pdpgate.core.retry.asyncio.sleep", fake_sleep)
    cli_backend.on("ping", ToolInvocationError("ping", output="refused"), "pong")

    code = cli.main(["ping", "--service-url", "u", "--service-name", "n", "--attempts", "3", "--delay", "5"])

    assert code == 0
    assert delays == [5]


def test_cli_ping_failure(cli_backend, capsys):
    cli_backend.on("ping", ToolInvocationError("ping", output="refused"))
    assert cli.main(["ping", "--service-url", "u", "--service-name", "n"]) == 1
    assert "refused" in capsys.readouterr().err


def test_cli_upload_and_bind(cli_backend, tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello")
    cli_backend.on("upload-file", "root-cli")
    cli_backend.on("add-roots", "added")

    code = cli.main([
        "upload", str(path), "--service-url", "u", "--service-name", "n", "--proof-set-id", "12",
    ])

    assert code == 0
    out = capsys.readouterr().out
    assert "rootCID: root-cli" in out
    assert cli_backend.calls_for("add-roots")[0][-1] == "root-cli"


def test_cli_without_command(capsys):
    assert cli.main([]) == 2
