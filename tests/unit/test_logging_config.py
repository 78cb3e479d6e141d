"""
Unit tests for utils.logging

Tests verify:
- Level selection from CLI verbosity
- Handler setup (stderr, rotating file, JSON)
- Formatter output and extra context fields
- Configuration from environment variables
"""

import json
import logging
import logging.handlers
import sys

import pytest

from utils.logging import (
    ConsoleFormatter,
    JSONFormatter,
    configure_from_env,
    setup_logging,
    shutdown_logging,
    verbosity_to_level,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    shutdown_logging()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def make_record(message="Table copied", level=logging.INFO, **extra):
    record = logging.LogRecord("schema_mirror.orchestrator", level, "orchestrator.py", 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestVerbosityToLevel:
    @pytest.mark.parametrize("verbose, level", [(0, "WARNING"), (1, "INFO"), (2, "DEBUG"), (5, "DEBUG")])
    def test_levels(self, verbose, level):
        assert verbosity_to_level(verbose) == level


class TestSetupLogging:
    """Test setup_logging handler configuration"""

    def test_console_handler_on_stderr(self):
        setup_logging(level="INFO")

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_lowercase_level(self):
        setup_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "mirror.log"

        setup_logging(level="INFO", log_file=str(log_file), console_output=False)
        logging.getLogger("schema_mirror").info("written to file")
        shutdown_logging()

        assert "written to file" in log_file.read_text()

    def test_file_handler_rotates(self, tmp_path):
        setup_logging(log_file=str(tmp_path / "m.log"), console_output=False, max_bytes=1024)

        (handler,) = logging.getLogger().handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 1024

    def test_json_format(self):
        setup_logging(json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_replaces_existing_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_noisy_libraries_quietened(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("pymysql").level == logging.WARNING


class TestJSONFormatter:
    """Test JSON log output"""

    def test_fields(self):
        output = json.loads(JSONFormatter(include_hostname=False).format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "schema_mirror.orchestrator"
        assert output["message"] == "Table copied"
        assert output["app"] == "schema-mirror"
        assert "timestamp" in output
        assert "hostname" not in output

    def test_extra_context(self):
        output = json.loads(JSONFormatter().format(make_record(relation="orders", rows=12)))
        assert output["context"] == {"relation": "orders", "rows": 12}

    def test_exception(self):
        try:
            raise ValueError("bad row")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, "f.py", 1, "failed", (), sys.exc_info())

        output = json.loads(JSONFormatter().format(record))

        assert output["exception"]["type"] == "ValueError"
        assert output["exception"]["message"] == "bad row"


class TestConsoleFormatter:
    """Test console log output"""

    def test_plain(self):
        output = ConsoleFormatter(use_colors=False).format(make_record())
        assert "[INFO] schema_mirror.orchestrator: Table copied" in output

    def test_extra_context_appended(self):
        output = ConsoleFormatter(use_colors=False).format(make_record(relation="orders"))
        assert output.endswith("[relation=orders]")

    def test_no_colors_when_not_a_tty(self, monkeypatch):
        monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
        assert ConsoleFormatter(use_colors=True).use_colors is False


class TestConfigureFromEnv:
    def test_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_JSON", "true")
        monkeypatch.setenv("LOG_CONSOLE", "false")
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "env.log"))

        configure_from_env()

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        (handler,) = root.handlers
        assert isinstance(handler.formatter, JSONFormatter)
