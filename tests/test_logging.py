"""Console line formatting and logging config validation."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from landprep.config import ConsoleLoggingConfig, LoggingConfig
from landprep.config.models import FileLoggingConfig
from landprep.pipeline import runner
from landprep.utils.logging import landprep_logger, plain_format, rich_line


def record(message, level="WARNING"):
    return {
        "level": SimpleNamespace(name=level),
        "time": datetime(2024, 5, 1, 14, 3, 9),
        "message": message,
        "name": "landprep.core.fetch",
        "function": "download",
        "line": 42,
    }


def test_rich_line_escapes_markup():
    line = rich_line(record("value [bold]x[/bold]"), ConsoleLoggingConfig(), detailed=False)
    assert "14:03:09" in line
    assert r"\[bold]" in line


def test_rich_line_detailed_location():
    cfg = ConsoleLoggingConfig(show_path=True)
    line = rich_line(record("retrying"), cfg, detailed=True)
    assert "landprep.core.fetch:download:42" in line


def test_plain_format_simple():
    cfg = ConsoleLoggingConfig(show_time=False)
    assert plain_format(cfg, detailed=False) == "{level: <8} | {message}"


def test_plain_format_detailed():
    fmt = plain_format(ConsoleLoggingConfig(), detailed=True)
    assert fmt.endswith("{name}:{function} - {message}")


def test_module_levels_normalized():
    cfg = LoggingConfig(modules={"landprep.core.fetch": "debug"})
    assert cfg.modules == {"landprep.core.fetch": "DEBUG"}


def test_invalid_module_level():
    with pytest.raises(ValidationError):
        LoggingConfig(modules={"landprep.core.fetch": "chatty"})


def test_log_path_placeholders():
    cfg = FileLoggingConfig(path="logs/{environment}.log")
    assert str(cfg.resolve_path("test")) == "logs/test.log"
    with pytest.raises(ValidationError):
        FileLoggingConfig(path="logs/{user}.log")


def test_rotation_format():
    with pytest.raises(ValidationError):
        FileLoggingConfig(rotation="often")


def test_file_logging_disabled():
    assert LoggingConfig(file={"enabled": False}).file_path("test") is None


def test_progress_and_log_sink_share_console():
    assert runner._progress().console is landprep_logger.console
