"""
Brief: Tests for srvctl.config.logging_config.init_logging and formatters.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import logging.handlers
from pathlib import Path

import pytest

from srvctl.config.logging_config import (
    BracketLevelFormatter,
    SyslogFormatter,
    init_logging,
    resolve_level,
)


@pytest.fixture(autouse=True)
def _no_env_level(monkeypatch):
    monkeypatch.delenv("SRVCTL_LOG", raising=False)


def test_init_logging_adds_stderr_handler():
    """
    Brief: init_logging configures root logger with a stderr handler by default.

    Inputs:
      - cfg: minimal dict with level

    Outputs:
      - None: Asserts StreamHandler present and level applied
    """
    init_logging({"level": "debug"})
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(type(h) is logging.StreamHandler for h in root.handlers)


def test_init_logging_file_handler_writes(tmp_path):
    """
    Brief: init_logging creates a file handler and writes bracket-tagged entries.

    Inputs:
      - tmp_path: pytest fixture

    Outputs:
      - None: Asserts file created and contains message
    """
    log_path = tmp_path / "logs" / "srvctl.log"
    init_logging({"level": "info", "stderr": False, "file": str(log_path)})
    logging.getLogger("srvctl.test").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text()
    assert "file message" in content
    assert "[info] srvctl.test:" in content


def test_level_precedence_env_over_cli_over_file(monkeypatch):
    """
    Brief: SRVCTL_LOG beats the CLI override, which beats logging.level.

    Inputs:
      - monkeypatch: pytest fixture

    Outputs:
      - None: Asserts effective root level for each layer
    """
    init_logging({"level": "error", "stderr": False})
    assert logging.getLogger().level == logging.ERROR

    init_logging({"level": "error", "stderr": False}, level_override="debug")
    assert logging.getLogger().level == logging.DEBUG

    monkeypatch.setenv("SRVCTL_LOG", "warn")
    init_logging({"level": "error", "stderr": False}, level_override="debug")
    assert logging.getLogger().level == logging.WARNING


def test_init_logging_syslog_handler(monkeypatch):
    """
    Brief: A syslog dict attaches a SysLogHandler with the configured tag.

    Inputs:
      - monkeypatch: pytest fixture

    Outputs:
      - None: Asserts handler arguments and formatter tag
    """
    created = {}

    class DummySysLog(logging.Handler):
        def __init__(self, address=None, facility=None):
            super().__init__()
            created["address"] = address
            created["facility"] = facility

    monkeypatch.setattr(logging.handlers, "SysLogHandler", DummySysLog)
    # Facility constants are looked up on the patched class.
    DummySysLog.LOG_USER = 1
    DummySysLog.LOG_DAEMON = 3

    init_logging(
        {
            "stderr": False,
            "syslog": {"address": ["127.0.0.1", 514], "facility": "daemon", "tag": "ctl"},
        }
    )
    assert created == {"address": ("127.0.0.1", 514), "facility": 3}
    handler = next(h for h in logging.getLogger().handlers if isinstance(h, DummySysLog))
    assert isinstance(handler.formatter, SyslogFormatter)
    assert handler.formatter.tag == "ctl"


def test_formatters_render_level_tags():
    """
    Brief: Formatters prefix bracketed lowercase level tags.

    Inputs:
      - None

    Outputs:
      - None: Asserts formatted strings
    """
    record = logging.LogRecord("srvctl.x", logging.WARNING, __file__, 1, "hi %s", ("there",), None)
    text = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s").format(record)
    assert text.endswith("[warn] srvctl.x: hi there")
    assert text[:20].endswith("Z")
    assert SyslogFormatter(tag="srvctl").format(record) == "srvctl: [warn] srvctl.x: hi there"


@pytest.mark.parametrize(
    "value,expected",
    [("trace", logging.DEBUG), ("WARN", logging.WARNING), ("crit", logging.CRITICAL), ("nope", logging.INFO), (None, logging.INFO)],
)
def test_resolve_level(value, expected):
    """
    Brief: resolve_level maps names case-insensitively with an info default.

    Inputs:
      - value: level name
      - expected: logging constant

    Outputs:
      - None: Asserts mapped level
    """
    assert resolve_level(value) == expected
