"""CLI parser and command-contract tests."""

from __future__ import annotations

import io
import signal
from contextlib import redirect_stdout

import pytest

from nftrecon.app import cli
from tests.helpers import OPERATOR_KEY, STRANGER_ADDRESS, run_cli, run_cli_json


def test_help_lists_commands() -> None:
    parser = cli.build_parser()
    out = io.StringIO()
    with redirect_stdout(out), pytest.raises(SystemExit) as exc:
        parser.parse_args(["--help"])
    assert exc.value.code == 0
    text = out.getvalue()
    for command in ("status", "recover", "daemon", "serve", "config"):
        assert command in text


def test_daemon_parser_accepts_interval() -> None:
    args = cli.build_parser().parse_args(["daemon", "--interval", "5m", "--once"])
    assert args.interval == 300
    assert args.once is True


def test_daemon_parser_rejects_short_interval() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["daemon", "--interval", "5s"])


def test_serve_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["serve"])
    assert args.host is None
    assert args.port is None
    assert args.no_daemon is False


def test_json_flag_may_follow_subcommand(worker_env, fake_ledger) -> None:
    code, payload = run_cli_json(["status", "--json"])
    assert code == 0
    assert payload["tracked_count"] == 12


def test_status_human_output(worker_env, fake_ledger) -> None:
    code, output = run_cli(["status"])
    assert code == 0
    assert "tracked_count: 12" in output
    assert "untracked: 2" in output


def test_status_config_error_exits_nonzero() -> None:
    code, payload = run_cli_json(["--json", "status"])
    assert code == 1
    assert payload["reason"] == "ConfigError"


def test_recover_json_returns_run_result(worker_env, fake_ledger) -> None:
    code, payload = run_cli_json(["--json", "recover"])
    assert code == 0
    assert payload["outcome"] == "recovered"
    assert payload["trigger"] == "manual"
    assert fake_ledger.writes == [("recoverBatch", [121, 137])]


def test_recover_human_output_lists_steps(worker_env, fake_ledger) -> None:
    code, output = run_cli(["recover"])
    assert code == 0
    assert "[detecting]" in output
    assert "outcome: recovered" in output
    assert "final_inventory" in output


def test_recover_unauthorized_exit_code(worker_env, fake_ledger) -> None:
    fake_ledger.owner = STRANGER_ADDRESS
    code, payload = run_cli_json(["recover", "--json"])
    assert code == 1
    assert payload["reason"] == "Unauthorized"


def test_recover_partial_exit_code(worker_env, fake_ledger) -> None:
    fake_ledger.held = set(range(1, 13)) | {900}
    code, payload = run_cli_json(["recover", "--json"])
    assert code == 3
    assert payload["reason"] == "ScanWindowTooNarrow"


def test_recover_restores_signal_handlers(worker_env, fake_ledger) -> None:
    before = signal.getsignal(signal.SIGINT)
    run_cli(["recover"])
    assert signal.getsignal(signal.SIGINT) is before


def test_daemon_once(worker_env, fake_ledger) -> None:
    code, payload = run_cli_json(["daemon", "--once", "--json"])
    assert code == 0
    assert payload["trigger"] == "scheduled"
    assert payload["outcome"] == "recovered"


def test_config_command_masks_secrets(worker_env) -> None:
    code, output = run_cli(["config"])
    assert code == 0
    assert "operator_key_set: True" in output
    assert OPERATOR_KEY not in output
    assert "environment" in output
