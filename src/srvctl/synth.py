"""Endpoint synthesis: SrvResult + DomainSpec -> desired EndpointObject.

Brief:
  The synthesizer is pure. It never talks to DNS or to a sink, and it always
  produces a complete object (or None when there is nothing safe to write).

Inputs:
  - SrvResult from srvctl.resolver.ResolutionEngine
  - DomainSpec from configuration

Outputs:
  - EndpointObject or None
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from ipaddress import IPv4Address
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import MANAGER_DOMAIN, MANAGER_NAME
from .errors import NotSupported
from .models import (
    DomainSpec,
    EndpointAddress,
    EndpointKind,
    EndpointObject,
    OwnerReference,
    SliceType,
    SrvRecord,
    SrvResult,
)

logger = logging.getLogger(__name__)

LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_SERVICE_NAME = "app.kubernetes.io/service-name"
LABEL_SRV_HOSTNAME = f"{MANAGER_DOMAIN}/srv-hostname"
LABEL_SLICE_SERVICE_NAME = "kubernetes.io/service-name"
LABEL_SLICE_MANAGED_BY = "endpointslice.kubernetes.io/managed-by"

ANNOTATION_SRV_HOSTNAME = f"{MANAGER_DOMAIN}/srv-hostname"
ANNOTATION_SRV_TARGETS = f"{MANAGER_DOMAIN}/srv-targets"

_ADDRESS_TYPES = {
    SliceType.IPV4: "IPv4",
    SliceType.FQDN: "FQDN",
}

_LABEL_VALUE_BAD = re.compile(r"[^a-z0-9._-]")
_LABEL_VALUE_MAX = 63
_LABEL_HASH_LEN = 8


def label_value(raw: str, fallback: str = "unknown") -> str:
    """Brief: Coerce arbitrary text into a valid Kubernetes label value.

    Inputs:
      - raw: Source text (e.g. an SRV owner name with underscores and a
        trailing dot).
      - fallback: Value used when nothing valid remains.

    Outputs:
      - str of at most 63 characters that starts and ends with an
        alphanumeric character. Longer values are cut and suffixed with the
        first 8 hex digits of the sha256 of raw.

    Example:
      >>> label_value("_mongodb._tcp.db.example.net.")
      'mongodb._tcp.db.example.net'
    """

    value = _LABEL_VALUE_BAD.sub("-", raw.strip().lower()).strip("._-")
    if len(value) > _LABEL_VALUE_MAX:
        # Keep truncated values of distinct names distinct.
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:_LABEL_HASH_LEN]
        head = value[: _LABEL_VALUE_MAX - _LABEL_HASH_LEN - 1].rstrip("._-")
        value = f"{head}-{digest}"
    return value or fallback


def system_labels(
    result: SrvResult, spec: DomainSpec, kind: EndpointKind
) -> Dict[str, str]:
    """Brief: Build the system-owned label set for one object.

    Inputs:
      - result: SrvResult the object is built from.
      - spec: DomainSpec naming the object.
      - kind: Target representation; slices get the EndpointSlice labels.

    Outputs:
      - dict of label key -> value. The managed-by, srv-hostname and
        service-name labels are always present and depend only on the
        configuration and the queried name, never on the address set.
    """

    labels = {
        LABEL_MANAGED_BY: MANAGER_NAME,
        LABEL_SRV_HOSTNAME: label_value(result.srv_hostname),
        LABEL_SERVICE_NAME: spec.service_name,
    }
    if kind == EndpointKind.SLICE:
        labels[LABEL_SLICE_SERVICE_NAME] = spec.service_name
        labels[LABEL_SLICE_MANAGED_BY] = MANAGER_DOMAIN
    return labels


def _record_order(rec: SrvRecord) -> Tuple[int, int, str]:
    return rec.priority, -rec.weight, rec.hostname


def _address_entries(records: Iterable[SrvRecord]) -> List[EndpointAddress]:
    entries: List[EndpointAddress] = []
    seen: set[str] = set()
    for rec in sorted(records, key=_record_order):
        for addr in sorted(rec.addresses or (), key=lambda a: int(IPv4Address(a))):
            text = str(addr)
            if text in seen:
                continue
            seen.add(text)
            entries.append(
                EndpointAddress(
                    address=text,
                    hostname=rec.hostname,
                    port=rec.port,
                    priority=rec.priority,
                    weight=rec.weight,
                )
            )
    return entries


def _targets_annotation(records: Sequence[SrvRecord]) -> str:
    targets = [
        {
            "hostname": rec.hostname,
            "port": rec.port,
            "priority": rec.priority,
            "weight": rec.weight,
        }
        for rec in sorted(records, key=_record_order)
    ]
    return json.dumps(targets, separators=(",", ":"))


def synthesize(
    result: SrvResult,
    spec: DomainSpec,
    *,
    namespace: str = "default",
    kind: EndpointKind = EndpointKind.SLICE,
    owner_refs: Sequence[OwnerReference] = (),
) -> Optional[EndpointObject]:
    """Brief: Map a resolution result onto the desired endpoint object.

    Inputs:
      - result: SrvResult for spec.hostname.
      - spec: DomainSpec providing identity and slice type.
      - namespace: Namespace of the object.
      - kind: EndpointKind.SLICE (EndpointSlice) or EndpointKind.ENDPOINTS
        (legacy flat Endpoints).
      - owner_refs: Owner references stamped on the object.

    Outputs:
      - EndpointObject, or None when result.records is None or no record has
        a non-empty address list. None means "do not write this cycle"; an
        empty object would erase the last good state on a resolver hiccup.

    Raises:
      - NotSupported when spec.slice_type is ipv6.

    Notes:
      - The port comes from the first record in resolver order. All targets of
        one SRV name are assumed to share a port; mixed-port SRV sets are not
        modelled.
      - Address entries are emitted in priority/weight/hostname/address order
        and de-duplicated so answer rotation does not change the object.
    """

    address_type = _ADDRESS_TYPES.get(spec.slice_type)
    if address_type is None:
        raise NotSupported(
            f"slice_type {spec.slice_type.value!r} for {spec.service_name} "
            "is not supported"
        )

    records = result.records
    if records is None or not result.resolved_addresses:
        return None

    labels = system_labels(result, spec, kind)
    annotations = {
        ANNOTATION_SRV_HOSTNAME: result.srv_hostname,
        ANNOTATION_SRV_TARGETS: _targets_annotation(records),
    }

    return EndpointObject(
        name=spec.service_name,
        namespace=namespace,
        kind=kind,
        address_type=address_type,
        addresses=tuple(_address_entries(records)),
        port=records[0].port,
        protocol=result.protocol,
        port_name=result.service,
        labels=tuple(sorted(labels.items())),
        annotations=tuple(sorted(annotations.items())),
        owner_refs=tuple(owner_refs),
    )


class EndpointSynthesizer:
    """Synthesizer bound to the controller-wide namespace, kind and owners."""

    def __init__(
        self,
        namespace: str = "default",
        kind: EndpointKind = EndpointKind.SLICE,
        owner_refs: Sequence[OwnerReference] = (),
    ) -> None:
        self.namespace = namespace
        self.kind = EndpointKind(kind)
        self.owner_refs = tuple(owner_refs)

    def synthesize(
        self, result: SrvResult, spec: DomainSpec
    ) -> Optional[EndpointObject]:
        obj = synthesize(
            result,
            spec,
            namespace=self.namespace,
            kind=self.kind,
            owner_refs=self.owner_refs,
        )
        if obj is None:
            logger.info(
                "%s: no resolved addresses for %s; leaving stored object untouched",
                spec.service_name,
                result.srv_hostname,
            )
        return obj
