from __future__ import annotations

import io
import json
import logging

import pytest
from rich.console import Console
from typer.testing import CliRunner

from transaction_machine import main
from transaction_machine.errors import TypeResolutionError
from transaction_machine.reporter import print_account, print_error

ACCOUNT = {
    "id": 7,
    "key": "root",
    "type": "Balancer",
    "balance": "0.00",
    "postpaid": True,
    "status": "active",
    "created_at": "2024-01-01T00:00:00",
    "updated_at": None,
    "label": "[primary]",
}


@pytest.fixture(autouse=True)
def restore_root_logging():
    """CLI commands reconfigure root logging; put pytest's handlers back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


def test_print_account_renders_fields_and_extras() -> None:
    console = _console()
    print_account(ACCOUNT, console=console)
    output = console.file.getvalue()

    assert "Balancer #7" in output
    assert "root" in output
    assert "yes" in output
    assert "null" in output
    assert "[primary]" in output
    assert output.index("key") < output.index("label")


def test_print_account_handles_missing_account() -> None:
    console = _console()
    print_account(None, console=console)
    assert "No account found." in console.file.getvalue()


def test_print_error_includes_name_and_code() -> None:
    console = _console()
    print_error({"error": "QueryError", "message": "bad or missing query params", "code": "bad"}, console)
    output = console.file.getvalue()
    assert "QueryError: bad or missing query params" in output
    assert "(code bad)" in output


def test_cli_prints_job_result_as_json(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_run_job(job_name, payload):
        assert job_name == "get_account"
        assert payload == {"key": "root"}
        return ACCOUNT

    monkeypatch.setattr(main, "_run_job", fake_run_job)
    result = CliRunner().invoke(main.app, ["get-account", "--key", "root"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == ACCOUNT


def test_cli_update_builds_set_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    async def fake_run_job(job_name, payload):
        seen.update(job=job_name, payload=payload)
        return ACCOUNT

    monkeypatch.setattr(main, "_run_job", fake_run_job)
    result = CliRunner().invoke(
        main.app,
        ["update-account", "--id", "7", "--set-type", "null", "--set-postpaid", "no"],
    )

    assert result.exit_code == 0
    assert seen == {
        "job": "update_account",
        "payload": {"query": {"id": 7}, "$set": {"type": None, "postpaid": False}},
    }


def test_cli_reports_machine_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_run_job(job_name, payload):
        raise TypeResolutionError("Nope")

    monkeypatch.setattr(main, "_run_job", fake_run_job)
    result = CliRunner().invoke(main.app, ["create-account", "k1", "--type", "Nope"])

    assert result.exit_code == 2
    assert "TypeResolutionError" in result.output


def test_cli_rejects_invalid_status_without_connecting(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fail_to_connect(settings):
        raise AssertionError("the pool must not be opened")

    monkeypatch.setattr(
        "transaction_machine.infrastructure.database.create_asyncpg_pool", fail_to_connect
    )
    result = CliRunner().invoke(main.app, ["create-account", "k1", "--status", "bogus"])

    assert result.exit_code == 2
    assert "AttributeValidationError" in result.output
    assert "status" in result.output


def test_print_error_lists_invalid_fields() -> None:
    console = _console()
    print_error(
        {
            "error": "AttributeValidationError",
            "message": "invalid account attributes: status",
            "code": None,
            "fields": {"status": "Input should be 'active', 'suspended' or 'deleted'"},
        },
        console,
    )
    output = console.file.getvalue()
    assert "status: Input should be 'active'" in output
