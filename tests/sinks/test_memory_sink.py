"""
Brief: Tests for srvctl.sinks.memory (MemorySink, FailingSink).

Inputs:
  - None

Outputs:
  - None
"""

from dataclasses import replace
from ipaddress import IPv4Address

import pytest

from srvctl.errors import SinkError
from srvctl.models import DomainSpec, SrvRecord, SrvResult, SrvTarget
from srvctl.sinks.memory import FailingSink, MemorySink
from srvctl.synth import LABEL_MANAGED_BY, synthesize

SRV = "_mongodb._tcp.db.example.net"


def _obj(address="192.0.2.1", port=27017, name="mongo"):
    rec = SrvRecord(SrvTarget("a.example", port), (IPv4Address(address),))
    result = SrvResult(SRV, "tcp", "mongodb", (rec,))
    return synthesize(result, DomainSpec(hostname=SRV, service_name=name))


def test_upsert_is_idempotent_and_replaces_on_change():
    """
    Brief: Same object twice writes once; a changed object replaces it.

    Inputs:
      - None

    Outputs:
      - None: Asserts return values, write counter and stored object
    """
    sink = MemorySink()
    obj = _obj()
    assert sink.upsert(obj) is True
    assert sink.upsert(_obj()) is False
    assert sink.writes == 1

    changed = _obj(address="192.0.2.2")
    assert sink.upsert(changed) is True
    assert sink.get("default", "mongo") == changed
    assert sink.objects() == [changed]
    assert sink.writes == 2


def test_upsert_refuses_foreign_owned_object():
    """
    Brief: An object managed by another writer is never overwritten.

    Inputs:
      - None

    Outputs:
      - None: Asserts SinkError and untouched stored object
    """
    sink = MemorySink()
    foreign = replace(
        _obj(),
        labels=tuple(
            (k, "someone-else" if k == LABEL_MANAGED_BY else v)
            for k, v in _obj().labels
        ),
    )
    sink.put(foreign)
    with pytest.raises(SinkError) as excinfo:
        sink.upsert(_obj(address="192.0.2.9"))
    assert "someone-else" in str(excinfo.value)
    assert sink.get("default", "mongo") == foreign


def test_close_clears_store_and_health_check_defaults_true():
    """
    Brief: close() drops stored objects; health_check() reports healthy.

    Inputs:
      - None

    Outputs:
      - None: Asserts empty store after close
    """
    sink = MemorySink()
    sink.upsert(_obj())
    assert sink.health_check() is True
    sink.close()
    assert sink.get("default", "mongo") is None


def test_failing_sink_only_fails_named_objects():
    """
    Brief: FailingSink raises for configured names and stores the rest.

    Inputs:
      - None

    Outputs:
      - None: Asserts SinkError for "mongo" and success for "other"
    """
    sink = FailingSink(fail_names=["mongo"])
    with pytest.raises(SinkError):
        sink.upsert(_obj())
    assert sink.upsert(_obj(name="other")) is True
