"""
Brief: Tests for srvctl.models value types and configuration records.

Inputs:
  - None

Outputs:
  - None
"""

from ipaddress import IPv4Address

import pytest

from srvctl.models import (
    DomainSpec,
    EndpointAddress,
    EndpointKind,
    EndpointObject,
    OwnerReference,
    SliceType,
    SrvRecord,
    SrvResult,
    SrvTarget,
)


def test_srv_target_rejects_out_of_range_and_non_int_values():
    """
    Brief: SrvTarget enforces u16 port/priority/weight and a non-empty hostname.

    Inputs:
      - None

    Outputs:
      - None: Asserts ValueError/TypeError for invalid fields
    """
    SrvTarget("db.example.net", 65535, 0, 0)
    with pytest.raises(ValueError):
        SrvTarget("db.example.net", 65536)
    with pytest.raises(ValueError):
        SrvTarget("db.example.net", 27017, priority=-1)
    with pytest.raises(TypeError):
        SrvTarget("db.example.net", True)
    with pytest.raises(ValueError):
        SrvTarget("", 27017)


def test_srv_record_properties_distinguish_failed_and_empty_lookups():
    """
    Brief: SrvRecord.resolved/has_addresses separate None from empty tuples.

    Inputs:
      - None

    Outputs:
      - None: Asserts property values for failed, empty and populated records
    """
    target = SrvTarget("a.example.net", 27017, 1, 5)
    failed = SrvRecord(target, None, "timeout")
    empty = SrvRecord(target, ())
    full = SrvRecord(target, (IPv4Address("192.0.2.1"),))

    assert (failed.resolved, failed.has_addresses) == (False, False)
    assert (empty.resolved, empty.has_addresses) == (True, False)
    assert (full.resolved, full.has_addresses) == (True, True)
    assert full.hostname == "a.example.net"
    assert (full.port, full.priority, full.weight) == (27017, 1, 5)


def test_srv_result_resolved_addresses_flattens_records_in_order():
    """
    Brief: SrvResult.resolved_addresses concatenates addresses, skipping failures.

    Inputs:
      - None

    Outputs:
      - None: Asserts flattened tuple
    """
    r1 = SrvRecord(SrvTarget("a", 1), (IPv4Address("192.0.2.1"),))
    r2 = SrvRecord(SrvTarget("b", 1), None, "boom")
    r3 = SrvRecord(SrvTarget("c", 1), (IPv4Address("192.0.2.3"),))
    result = SrvResult("_x._tcp.example", "tcp", "x", (r1, r2, r3))
    assert result.resolved_addresses == (
        IPv4Address("192.0.2.1"),
        IPv4Address("192.0.2.3"),
    )
    assert SrvResult("_x._tcp.example").resolved_addresses == ()


def test_domain_spec_normalizes_and_validates():
    """
    Brief: DomainSpec strips hostnames, lowercases slice_type and checks names.

    Inputs:
      - None

    Outputs:
      - None: Asserts normalized fields and ValueError on invalid entries
    """
    spec = DomainSpec(
        hostname="  _mongodb._tcp.db.example.net ",
        service_name="mongo-db",
        slice_type="FQDN",
    )
    assert spec.hostname == "_mongodb._tcp.db.example.net"
    assert spec.slice_type is SliceType.FQDN
    assert DomainSpec(hostname="h", service_name="m").slice_type is SliceType.IPV4

    with pytest.raises(ValueError):
        DomainSpec(hostname="h", service_name="Mongo_DB")
    with pytest.raises(ValueError):
        DomainSpec(hostname="h", service_name="-mongo")
    with pytest.raises(ValueError):
        DomainSpec(hostname="h", service_name="mongo", slice_type="ipv5")
    with pytest.raises(ValueError):
        DomainSpec(hostname="h", service_name="mongo", bogus=1)


def test_owner_reference_as_manifest_uses_kubernetes_keys():
    """
    Brief: OwnerReference.as_manifest renders camelCase Kubernetes field names.

    Inputs:
      - None

    Outputs:
      - None: Asserts manifest mapping
    """
    ref = OwnerReference(
        api_version="apps/v1", kind="Deployment", name="srvctl", uid="u-1",
        controller=True,
    )
    assert ref.as_manifest() == {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "name": "srvctl",
        "uid": "u-1",
        "controller": True,
        "blockOwnerDeletion": False,
    }


def _obj(addresses, port=27017):
    return EndpointObject(
        name="mongo",
        namespace="default",
        kind=EndpointKind.SLICE,
        address_type="IPv4",
        addresses=tuple(EndpointAddress(a, "h.example", port) for a in addresses),
        port=port,
        protocol="tcp",
        port_name="mongodb",
        labels=(("a", "1"),),
    )


def test_endpoint_object_fingerprint_tracks_content():
    """
    Brief: Equal objects share a fingerprint; any address or port change alters it.

    Inputs:
      - None

    Outputs:
      - None: Asserts fingerprint equality/inequality and helper maps
    """
    a = _obj(["192.0.2.1"])
    b = _obj(["192.0.2.1"])
    assert a == b
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != _obj(["192.0.2.2"]).fingerprint()
    assert a.fingerprint() != _obj(["192.0.2.1"], port=27018).fingerprint()
    assert a.address_set() == frozenset({"192.0.2.1"})
    assert a.label_map() == {"a": "1"}
    assert a.to_dict()["kind"] == "slice"
