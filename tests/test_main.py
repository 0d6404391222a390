"""
Tests for the command line entry point.
"""

import pytest

from pagepilot.__main__ import apply_cli_overrides, build_parser


class TestCLI:
    def test_defaults_leave_config_alone(self, config):
        args = build_parser().parse_args([])
        apply_cli_overrides(config, args)
        assert config.headless is True
        assert config.snapshots is True
        assert config.port == 8931

    def test_flags_override_config(self, config):
        args = build_parser().parse_args([
            "--http", "--port", "9000", "--caps", "network,storage", "--browser", "firefox",
            "--headed", "--keep-browser-open", "--no-snapshots",
        ])
        apply_cli_overrides(config, args)
        assert args.http
        assert config.port == 9000
        assert config.capabilities == {"core", "network", "storage"}
        assert config.browser == "firefox"
        assert config.headless is False
        assert config.keep_browser_open is True
        assert config.snapshots is False

    def test_unknown_capability_flag(self, config):
        args = build_parser().parse_args(["--caps", "teleport"])
        with pytest.raises(ValueError):
            apply_cli_overrides(config, args)

    def test_unknown_browser_flag(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--browser", "netscape"])
