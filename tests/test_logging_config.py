"""
Tests for log formatting and setup.
"""

from __future__ import annotations

import json
import logging

import pytest

from deployer.logging_config import HumanFormatter, JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("deployer.git.sync", logging.WARNING, __file__, 1, "Fetching %s", ("origin",), None)
    for name, value in extra.items():
        setattr(record, name, value)
    return record


class TestJSONFormatter:

    def test_includes_deployment_context(self):
        record = _record(target_id="blog-dev", deployment_id="D-1", processor=None, operation="fetch")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Fetching origin"
        assert entry["level"] == "WARNING"
        assert entry["target_id"] == "blog-dev"
        assert entry["operation"] == "fetch"
        assert "processor" not in entry
        assert entry["ts"].endswith("Z")


class TestHumanFormatter:

    def test_prefixes_target_and_processor(self):
        line = HumanFormatter().format(_record(target_id="blog-dev", processor="git-pull"))

        assert "[sync           ]" in line
        assert line.endswith("(blog-dev/git-pull) Fetching origin")
        assert "\033[" not in line

    def test_colour_only_when_enabled(self):
        line = HumanFormatter(color=True).format(_record())

        assert line.split()[1].startswith("\033[33m")


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "json")

        setup_logging()

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")

        setup_logging(level="ERROR", format_type="text")

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, HumanFormatter)
