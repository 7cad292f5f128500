"""Data model shared by the resolver, synthesizer, loop and sinks.

Resolution results are frozen dataclasses (built once per poll, never
mutated). Configuration-supplied records are pydantic models so they are
validated at load time.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from ipaddress import IPv4Address
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, validator

_U16_MAX = 65535
DNS_LABEL_RE = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")


def _check_u16(field_name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int, got {type(value).__name__}")
    if value < 0 or value > _U16_MAX:
        raise ValueError(f"{field_name} must be within 0..{_U16_MAX}, got {value}")


class SliceType(str, Enum):
    """Shape of the address set written for a domain."""

    IPV4 = "ipv4"
    FQDN = "fqdn"
    IPV6 = "ipv6"


class EndpointKind(str, Enum):
    """Target representation: modern EndpointSlice or legacy flat Endpoints."""

    SLICE = "slice"
    ENDPOINTS = "endpoints"


@dataclass(frozen=True)
class SrvTarget:
    """Brief: One (priority, weight, port, target) tuple from an SRV RRset.

    Inputs:
      - hostname: Target host name without the trailing root dot.
      - port: TCP/UDP port (u16).
      - priority: SRV priority (u16, lower is preferred).
      - weight: SRV weight (u16, relative share within a priority).

    Outputs:
      - Immutable SrvTarget; values are kept exactly as the resolver returned
        them.
    """

    hostname: str
    port: int
    priority: int = 0
    weight: int = 0

    def __post_init__(self) -> None:
        if not self.hostname:
            raise ValueError("SrvTarget.hostname must be non-empty")
        _check_u16("port", self.port)
        _check_u16("priority", self.priority)
        _check_u16("weight", self.weight)


@dataclass(frozen=True)
class SrvRecord:
    """Brief: An SrvTarget plus the outcome of its A-record lookup.

    Inputs:
      - target: The SRV target this record was built from.
      - addresses: None when address resolution failed or has not run; an
        empty tuple when it succeeded with zero addresses.
      - error: Optional failure text when addresses is None.

    Outputs:
      - Immutable SrvRecord.
    """

    target: SrvTarget
    addresses: Optional[Tuple[IPv4Address, ...]] = None
    error: Optional[str] = None

    @property
    def hostname(self) -> str:
        return self.target.hostname

    @property
    def port(self) -> int:
        return self.target.port

    @property
    def priority(self) -> int:
        return self.target.priority

    @property
    def weight(self) -> int:
        return self.target.weight

    @property
    def resolved(self) -> bool:
        return self.addresses is not None

    @property
    def has_addresses(self) -> bool:
        return bool(self.addresses)


@dataclass(frozen=True)
class SrvResult:
    """Brief: Complete resolution of one SRV name.

    Inputs:
      - srv_hostname: The queried SRV owner name, verbatim.
      - protocol: Protocol label recovered from the name (e.g. "tcp") or None.
      - service: Service label recovered from the name (e.g. "mongodb") or None.
      - records: One SrvRecord per SRV target, in resolver order, or None when
        no record set is available.

    Outputs:
      - Immutable SrvResult.
    """

    srv_hostname: str
    protocol: Optional[str] = None
    service: Optional[str] = None
    records: Optional[Tuple[SrvRecord, ...]] = None

    @property
    def resolved_addresses(self) -> Tuple[IPv4Address, ...]:
        out: list[IPv4Address] = []
        for rec in self.records or ():
            if rec.has_addresses:
                out.extend(rec.addresses)
        return tuple(out)


class DomainSpec(BaseModel):
    """Brief: One configured SRV name to reconcile.

    Inputs:
      - hostname: SRV owner name to resolve (e.g. "_mongodb._tcp.db.example.net").
      - service_name: Stable identity of the synthesized object; the
        reconciliation key across poll cycles.
      - slice_type: ipv4, fqdn or ipv6 (ipv6 is rejected at synthesis time).

    Outputs:
      - Validated, immutable DomainSpec.
    """

    hostname: str = Field(..., min_length=1)
    service_name: str = Field(..., min_length=1, max_length=63)
    slice_type: SliceType = SliceType.IPV4

    class Config:
        frozen = True
        extra = "forbid"

    @validator("hostname", pre=True)
    def _strip_hostname(cls, v):  # noqa: N805
        return str(v).strip() if v is not None else v

    @validator("service_name")
    def _check_service_name(cls, v):  # noqa: N805
        if not DNS_LABEL_RE.fullmatch(v):
            raise ValueError(
                "service_name must consist of lowercase alphanumerics or '-', "
                "and start and end with an alphanumeric character"
            )
        return v

    @validator("slice_type", pre=True)
    def _lower_slice_type(cls, v):  # noqa: N805
        if isinstance(v, str):
            return v.strip().lower()
        return v


class OwnerReference(BaseModel):
    """Owner metadata stamped on every synthesized object."""

    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False

    class Config:
        frozen = True
        extra = "forbid"

    def as_manifest(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }


@dataclass(frozen=True)
class EndpointAddress:
    address: str
    hostname: str
    port: int
    priority: int = 0
    weight: int = 0


@dataclass(frozen=True)
class EndpointObject:
    """Brief: Target-agnostic desired state for one service_name.

    Inputs:
      - name: Object identity (DomainSpec.service_name).
      - namespace: Namespace the object lives in.
      - kind: EndpointKind selecting slice vs. flat representation.
      - address_type: "IPv4" or "FQDN".
      - addresses: Flattened address entries in deterministic order.
      - port: Service port taken from the SRV answer.
      - protocol: Protocol label from the SRV name, or None.
      - port_name: Service label from the SRV name, or None.
      - labels / annotations: Sorted (key, value) pairs.
      - owner_refs: Owner references from configuration.

    Outputs:
      - Immutable EndpointObject. Sinks replace the stored object with it as a
        whole; it is never merged field by field.
    """

    name: str
    namespace: str
    kind: EndpointKind
    address_type: str
    addresses: Tuple[EndpointAddress, ...]
    port: int
    protocol: Optional[str] = None
    port_name: Optional[str] = None
    labels: Tuple[Tuple[str, str], ...] = ()
    annotations: Tuple[Tuple[str, str], ...] = ()
    owner_refs: Tuple[OwnerReference, ...] = field(default=())

    def label_map(self) -> Dict[str, str]:
        return dict(self.labels)

    def annotation_map(self) -> Dict[str, str]:
        return dict(self.annotations)

    def address_set(self) -> frozenset[str]:
        return frozenset(a.address for a in self.addresses)

    def to_dict(self) -> Dict[str, Any]:
        """Brief: Canonical JSON-compatible representation.

        Inputs:
          - None.

        Outputs:
          - dict with plain str/int/list/dict values; stable for equal objects.
        """

        return {
            "name": self.name,
            "namespace": self.namespace,
            "kind": self.kind.value,
            "address_type": self.address_type,
            "addresses": [
                {
                    "address": a.address,
                    "hostname": a.hostname,
                    "port": a.port,
                    "priority": a.priority,
                    "weight": a.weight,
                }
                for a in self.addresses
            ],
            "port": self.port,
            "protocol": self.protocol,
            "port_name": self.port_name,
            "labels": self.label_map(),
            "annotations": self.annotation_map(),
            "owner_refs": [ref.as_manifest() for ref in self.owner_refs],
        }

    def fingerprint(self) -> str:
        payload = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
