"""
Tests for CLI parsing and configuration building.
"""

import pytest

from data_ingestion.types import RefreshConfig
from orchestrator.cli import build_config, create_parser, validate_args


class TestParser:

    def test_defaults_leave_environment_in_charge(self):
        args = create_parser().parse_args([])

        assert args.once is False
        assert args.schedule is None
        assert args.interval is None
        assert args.log_level is None

    def test_all_flags(self):
        args = create_parser().parse_args([
            "--once",
            "--schedule", "30 1 * * *",
            "--interval", "5",
            "--timeout", "10",
            "--log-level", "DEBUG",
            "--log-format", "json",
            "--database-url", "sqlite://",
        ])

        assert args.once is True
        assert args.schedule == "30 1 * * *"
        assert args.interval == 5.0
        assert args.timeout == 10.0
        assert args.log_level == "DEBUG"
        assert args.log_format == "json"
        assert args.database_url == "sqlite://"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--log-level", "LOUD"])


class TestValidateArgs:

    def test_valid(self):
        args = create_parser().parse_args(["--interval", "0", "--timeout", "1"])
        assert validate_args(args) == []

    def test_invalid_values(self):
        args = create_parser().parse_args([
            "--interval", "-1",
            "--timeout", "0",
            "--schedule", " ",
        ])

        errors = validate_args(args)

        assert len(errors) == 3


class TestBuildConfig:

    def test_cli_overrides_base(self):
        base = RefreshConfig(schedule="0 2 * * *", min_instrument_interval_seconds=2)
        args = create_parser().parse_args(["--schedule", "0 */6 * * *", "--interval", "0.5"])

        config = build_config(args, base=base)

        assert config.schedule == "0 */6 * * *"
        assert config.min_instrument_interval_seconds == 0.5
        assert config.request_timeout_seconds == base.request_timeout_seconds

    def test_environment_used_without_flags(self, monkeypatch):
        monkeypatch.setenv("REFRESH_SCHEDULE", "15 3 * * *")
        args = create_parser().parse_args([])

        config = build_config(args)

        assert config.schedule == "15 3 * * *"
