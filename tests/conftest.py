"""
Brief: Global pytest configuration: src on sys.path, per-test 10s timeout,
fake resolver capability and root-logger restoration.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys
import threading
from ipaddress import IPv4Address

import pytest

# Ensure 'src' is on sys.path so 'srvctl' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from srvctl.errors import ResolutionError  # noqa: E402
from srvctl.models import SrvTarget  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


class FakeResolver:
    """
    Brief: In-memory resolver capability.

    Inputs:
      - srv: name -> list of SrvTarget / (host, port[, priority, weight])
        tuples, or an Exception instance to raise.
      - a: hostname -> list of IPv4 strings, or an Exception instance to raise.
      - block: Optional name -> threading.Event; srv_query waits on it.

    Outputs:
      - Object implementing srv_query()/a_query(); calls are recorded.
    """

    def __init__(self, srv=None, a=None, block=None):
        self.srv = dict(srv or {})
        self.a = dict(a or {})
        self.block = dict(block or {})
        self.calls = []
        self._lock = threading.Lock()

    def srv_query(self, name):
        with self._lock:
            self.calls.append(("SRV", name))
        gate = self.block.get(name)
        if gate is not None:
            gate.wait(5)
        value = self.srv.get(name)
        if value is None:
            raise ResolutionError(name, "SRV", "NXDOMAIN")
        if isinstance(value, Exception):
            raise value
        out = []
        for item in value:
            if isinstance(item, SrvTarget):
                out.append(item)
            else:
                out.append(SrvTarget(*item))
        return out

    def a_query(self, hostname):
        with self._lock:
            self.calls.append(("A", hostname))
        value = self.a.get(hostname, [])
        if isinstance(value, Exception):
            raise value
        return [IPv4Address(v) for v in value]


@pytest.fixture
def fake_resolver():
    """
    Brief: Factory fixture building FakeResolver instances.

    Inputs:
      - None

    Outputs:
      - Callable returning FakeResolver(srv=..., a=..., block=...)
    """
    return FakeResolver


@pytest.fixture(autouse=True)
def restore_root_logging():
    """
    Brief: Undo init_logging() side effects on the root logger after each test.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield
