"""Tests for logging helpers"""

import logging
from io import StringIO

import pytest
import structlog
from rich.console import Console

from initkit.config import settings
from initkit.logging import (PluginLogger, bind_context, clear_context,
                             setup_logging)
from initkit.logging_processors import add_run_context, sanitize_sensitive_data


def make_console(buffer: StringIO) -> Console:
    return Console(file=buffer, force_terminal=False, color_system=None, width=120)


class TestPluginLogger:
    """Test user-facing log output"""

    def test_echoes_to_console(self):
        buffer = StringIO()
        plugin_logger = PluginLogger(console=make_console(buffer))

        plugin_logger.info("Loading plugin: git")
        plugin_logger.success("Generated: .claude/rules/10-git.md")
        plugin_logger.warning("Removed npm (conflicts with yarn)")
        plugin_logger.error("Init command failed")

        assert buffer.getvalue().splitlines() == [
            "Loading plugin: git",
            "Generated: .claude/rules/10-git.md",
            "Removed npm (conflicts with yarn)",
            "Init command failed",
        ]

    def test_markup_is_not_interpreted(self):
        buffer = StringIO()
        plugin_logger = PluginLogger(console=make_console(buffer))

        plugin_logger.info("[stderr] missing [bold]file[/bold]")

        assert buffer.getvalue().strip() == "[stderr] missing [bold]file[/bold]"

    def test_step_and_blank(self):
        buffer = StringIO()
        plugin_logger = PluginLogger(console=make_console(buffer))

        plugin_logger.step(2, "Merging protected files")
        plugin_logger.blank()

        assert buffer.getvalue() == "[2] Merging protected files\n\n"

    def test_without_console(self):
        """Test messages are only logged when no console is attached"""
        plugin_logger = PluginLogger()

        plugin_logger.info("quiet")
        plugin_logger.blank()


class TestProcessors:
    """Test custom structlog processors"""

    def test_sanitize_nested(self):
        event = {
            "event": "command_started",
            "env": {"GITHUB_TOKEN": "abc", "HOME": "/home/dev"},
            "api_key": "xyz",
            "items": [{"password": "p"}, "plain"],
        }

        result = sanitize_sensitive_data(None, "info", event)

        assert result["env"] == {"GITHUB_TOKEN": "***REDACTED***", "HOME": "/home/dev"}
        assert result["api_key"] == "***REDACTED***"
        assert result["items"] == [{"password": "***REDACTED***"}, "plain"]

    def test_run_context(self):
        clear_context()
        bind_context(run_id="abc123", plugin="git")
        try:
            result = add_run_context(None, "info", {"event": "x", "plugin": "explicit"})
        finally:
            clear_context()

        assert result["run_id"] == "abc123"
        assert result["plugin"] == "explicit"


class TestSetupLogging:
    """Test structlog configuration"""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    @pytest.mark.parametrize("log_format, renderer", [
        ("json", structlog.processors.JSONRenderer),
        ("console", structlog.dev.ConsoleRenderer),
    ])
    def test_root_handler(self, monkeypatch, log_format, renderer):
        monkeypatch.setattr(settings, "log_format", log_format)
        monkeypatch.setattr(settings, "log_level", "DEBUG")

        setup_logging()

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], renderer)
