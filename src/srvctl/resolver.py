"""SRV and A-record resolution.

Brief:
  This module turns one SRV owner name into an SrvResult. It contains:
    - DnsPythonResolver: the concrete resolver capability backed by dnspython
    - resolve_srv_targets / resolve_ipv4: single-query helpers that normalize
      every failure into ResolutionError
    - ResolutionEngine: SRV query, then one A query per target (concurrently),
      with hard failure only on the SRV query itself

Inputs:
  - SRV owner names such as ``_mongodb._tcp.cluster0.example.net``

Outputs:
  - SrvResult instances (see srvctl.models)
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from ipaddress import IPv4Address
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence

import dns.exception
import dns.name
import dns.rdatatype
import dns.resolver

from .errors import ResolutionError
from .models import SrvRecord, SrvResult, SrvTarget
from .names import parse_labels

if TYPE_CHECKING:  # pragma: no cover
    from .stats import ReconcileStats

logger = logging.getLogger(__name__)


class ResolverCapability(Protocol):
    """Anything that can answer SRV and A questions.

    Implementations raise ResolutionError on transport or protocol failure and
    return an empty list when the name exists but has no records of the type.
    """

    def srv_query(self, name: str) -> List[SrvTarget]: ...

    def a_query(self, hostname: str) -> List[IPv4Address]: ...


class DnsPythonResolver:
    """Resolver capability backed by ``dns.resolver.Resolver``.

    Inputs (constructor):
      - nameservers: Optional list of nameserver IPs. When omitted the system
        configuration (resolv.conf) is used.
      - port: Nameserver port (default 53).
      - timeout_seconds: Per-nameserver attempt timeout.
      - lifetime_seconds: Overall time budget for one query.
      - resolv_conf: Optional alternate resolv.conf path.

    Outputs:
      - DnsPythonResolver instance.

    Raises:
      - dns.resolver.NoResolverConfiguration when no nameservers are configured
        and the system configuration has none; callers treat this as fatal at
        startup.
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        *,
        port: int = 53,
        timeout_seconds: float = 2.0,
        lifetime_seconds: float = 5.0,
        resolv_conf: Optional[str] = None,
    ) -> None:
        if nameservers:
            r = dns.resolver.Resolver(configure=False)
            # Port must be set before nameservers; dnspython binds it to each
            # nameserver entry on assignment.
            r.port = int(port)
            r.nameservers = [str(ns) for ns in nameservers]
        elif resolv_conf:
            r = dns.resolver.Resolver(filename=resolv_conf, configure=True)
        else:
            r = dns.resolver.Resolver(configure=True)
        r.timeout = float(timeout_seconds)
        r.lifetime = float(lifetime_seconds)
        self._resolver = r

    @property
    def nameservers(self) -> List[str]:
        return [str(ns) for ns in self._resolver.nameservers]

    def _query(self, name: str, rdtype: str) -> dns.resolver.Answer:
        try:
            return self._resolver.resolve(
                name,
                rdtype,
                raise_on_no_answer=False,
                search=False,
            )
        except dns.exception.DNSException as exc:
            raise ResolutionError(name, rdtype, exc) from exc

    def srv_query(self, name: str) -> List[SrvTarget]:
        answer = self._query(name, "SRV")
        targets: List[SrvTarget] = []
        for rdata in answer.rrset or ():
            if rdata.rdtype != dns.rdatatype.SRV:
                continue
            if rdata.target == dns.name.root:
                # RFC 2782: a target of "." means the service is decidedly
                # not available at this domain.
                logger.debug("SRV %s: skipping '.' target", name)
                continue
            try:
                targets.append(
                    SrvTarget(
                        hostname=rdata.target.to_text(omit_final_dot=True),
                        port=int(rdata.port),
                        priority=int(rdata.priority),
                        weight=int(rdata.weight),
                    )
                )
            except (TypeError, ValueError) as exc:
                raise ResolutionError(name, "SRV", f"malformed SRV rdata: {exc}")
        return targets

    def a_query(self, hostname: str) -> List[IPv4Address]:
        answer = self._query(hostname, "A")
        addresses: List[IPv4Address] = []
        for rdata in answer.rrset or ():
            if rdata.rdtype != dns.rdatatype.A:
                continue
            try:
                addresses.append(IPv4Address(rdata.address))
            except ValueError as exc:
                raise ResolutionError(hostname, "A", f"malformed A rdata: {exc}")
        return addresses


def resolve_srv_targets(name: str, resolver: ResolverCapability) -> List[SrvTarget]:
    """Brief: Issue one SRV query and return its targets in resolver order.

    Inputs:
      - name: SRV owner name.
      - resolver: Resolver capability.

    Outputs:
      - list[SrvTarget]; empty when the RRset is empty. Priority and weight
        are not re-sorted here.

    Raises:
      - ResolutionError on timeout, NXDOMAIN, SERVFAIL or malformed responses.
    """

    try:
        targets = list(resolver.srv_query(name))
    except ResolutionError:
        raise
    except Exception as exc:
        raise ResolutionError(name, "SRV", exc) from exc
    logger.debug("SRV %s -> %d target(s)", name, len(targets))
    return targets


def resolve_ipv4(hostname: str, resolver: ResolverCapability) -> List[IPv4Address]:
    """Brief: Issue one A query for an SRV target hostname.

    Inputs:
      - hostname: Target host name.
      - resolver: Resolver capability.

    Outputs:
      - list[IPv4Address]; empty when the name has no A records.

    Raises:
      - ResolutionError on any query failure.
    """

    try:
        addresses = list(resolver.a_query(hostname))
    except ResolutionError:
        raise
    except Exception as exc:
        raise ResolutionError(hostname, "A", exc) from exc
    logger.debug("A %s -> %s", hostname, [str(a) for a in addresses])
    return addresses


class ResolutionEngine:
    """Resolve an SRV name and every target's IPv4 addresses into an SrvResult.

    Inputs (constructor):
      - resolver: Resolver capability (DnsPythonResolver in production).
      - max_workers: Upper bound on concurrent A lookups for one SRV name.
      - stats: Optional ReconcileStats that counts per-target failures.

    Outputs:
      - ResolutionEngine instance; call resolve() once per poll and domain.

    Example:
        >>> engine = ResolutionEngine(DnsPythonResolver(["1.1.1.1"]))
        >>> result = engine.resolve("_mongodb._tcp.cluster0.example.net")
        >>> [r.hostname for r in result.records or ()]
    """

    def __init__(
        self,
        resolver: ResolverCapability,
        *,
        max_workers: int = 8,
        stats: Optional["ReconcileStats"] = None,
    ) -> None:
        self.resolver = resolver
        self.max_workers = max(1, int(max_workers))
        self.stats = stats

    def resolve(self, srv_hostname: str) -> SrvResult:
        """Brief: Resolve one SRV name into a complete SrvResult.

        Inputs:
          - srv_hostname: SRV owner name.

        Outputs:
          - SrvResult with one SrvRecord per target, in SRV answer order. A
            target whose A lookup failed keeps addresses=None.

        Raises:
          - ResolutionError only when the SRV query itself fails.
        """

        service, protocol = parse_labels(srv_hostname)
        if service is None or protocol is None:
            logger.info(
                "%s is not an SRV-shaped name; service=%s protocol=%s",
                srv_hostname,
                service,
                protocol,
            )

        targets = resolve_srv_targets(srv_hostname, self.resolver)
        if not targets:
            logger.warning("SRV lookup for %s returned no targets", srv_hostname)
            return SrvResult(
                srv_hostname=srv_hostname,
                protocol=protocol,
                service=service,
                records=(),
            )

        workers = min(self.max_workers, len(targets))
        if workers <= 1:
            records = [self._lookup(srv_hostname, t) for t in targets]
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="srvctl-a"
            ) as executor:
                futures = [
                    executor.submit(self._lookup, srv_hostname, t) for t in targets
                ]
                # Wait for every lookup; _lookup never raises.
                records = [f.result() for f in futures]

        failed = sum(1 for rec in records if not rec.resolved)
        if failed:
            logger.debug(
                "%s: %d of %d address lookups failed", srv_hostname, failed, len(records)
            )

        return SrvResult(
            srv_hostname=srv_hostname,
            protocol=protocol,
            service=service,
            records=tuple(records),
        )

    def _lookup(self, srv_hostname: str, target: SrvTarget) -> SrvRecord:
        try:
            addresses = resolve_ipv4(target.hostname, self.resolver)
        except ResolutionError as exc:
            logger.warning(
                "Address lookup for %s (target of %s) failed: %s",
                target.hostname,
                srv_hostname,
                exc.cause,
            )
            if self.stats is not None:
                self.stats.record_address_failure(srv_hostname)
            return SrvRecord(target=target, addresses=None, error=str(exc))

        if not addresses:
            logger.warning(
                "Address lookup for %s (target of %s) returned no A records",
                target.hostname,
                srv_hostname,
            )
        return SrvRecord(target=target, addresses=tuple(addresses))
