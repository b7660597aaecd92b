"""Tests for the order-escrow command line."""

from __future__ import annotations

import json

import pytest

from order_escrow import cli
from order_escrow.jobs.auto_approval import SweepReport


class TestParser:
    def test_sweep_defaults(self) -> None:
        args = cli.build_parser().parse_args(["sweep-auto-approvals"])
        assert args.command == "sweep-auto-approvals"
        assert args.no_lock is False
        assert args.batch_size == 200

    def test_sweep_flags(self) -> None:
        args = cli.build_parser().parse_args(
            ["sweep-auto-approvals", "--no-lock", "--batch-size", "50"]
        )
        assert args.no_lock is True
        assert args.batch_size == 50

    def test_no_command_prints_help(self, capsys) -> None:
        assert cli.main([]) == 0
        assert "sweep-auto-approvals" in capsys.readouterr().out


class TestSweepCommand:
    @pytest.fixture
    def fake_sweep(self, monkeypatch):
        calls: list[dict] = []

        async def _sweep(factory, **kwargs):
            calls.append(kwargs)
            return SweepReport(scanned=3, approved=2, skipped=1)

        async def _noop() -> None:
            return None

        monkeypatch.setattr(cli, "run_auto_approval_sweep", _sweep)
        monkeypatch.setattr(cli, "get_session_factory", lambda: None)
        monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
        monkeypatch.setattr(cli, "close_db", _noop)
        monkeypatch.setattr(cli, "close_redis", _noop)
        return calls

    def test_sweep_without_lock(self, fake_sweep, capsys) -> None:
        code = cli.main(["sweep-auto-approvals", "--no-lock", "--batch-size", "10"])

        assert code == 0
        assert fake_sweep == [{"use_lock": False, "redis": None, "batch_size": 10}]
        report = json.loads(capsys.readouterr().out)
        assert report["approved"] == 2
