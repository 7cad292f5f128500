"""Error taxonomy for the resolution and reconciliation engine.

Every fallible step in the reconciliation path raises one of these types so
the loop can decide, per domain, whether a failure is logged and skipped or
fatal for the process.
"""

from __future__ import annotations

from typing import Optional


class SrvctlError(Exception):
    """
    Brief: Base class for all srvctl errors.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class ResolutionError(SrvctlError):
    """
    Brief: A DNS query (SRV or A) failed.

    Inputs:
    - name: queried DNS name
    - rdtype: record type that was queried ("SRV" or "A")
    - cause: underlying exception or short reason text

    Outputs:
    - Exception instance carrying name/rdtype/cause attributes

    Example:
        >>> err = ResolutionError("_db._tcp.example.com", "SRV", "timeout")
        >>> str(err)
        'SRV lookup for _db._tcp.example.com failed: timeout'
    """

    def __init__(
        self, name: str, rdtype: str = "SRV", cause: object | None = None
    ) -> None:
        self.name = name
        self.rdtype = rdtype
        self.cause = cause
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(f"{rdtype} lookup for {name} failed: {reason}")


class NotSupported(SrvctlError):
    """
    Brief: A configured behaviour exists in the model but is not implemented.

    Inputs:
    - message: description (e.g. which slice type was requested)

    Outputs:
    - Exception instance
    """

    pass


class SinkError(SrvctlError):
    """
    Brief: The endpoint sink rejected or failed an upsert.

    Inputs:
    - name: object identity (service_name)
    - namespace: object namespace
    - cause: underlying exception or reason text

    Outputs:
    - Exception instance carrying name/namespace/cause attributes
    """

    def __init__(
        self, name: str, namespace: Optional[str] = None, cause: object | None = None
    ) -> None:
        self.name = name
        self.namespace = namespace
        self.cause = cause
        where = f"{namespace}/{name}" if namespace else name
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(f"upsert of {where} failed: {reason}")
