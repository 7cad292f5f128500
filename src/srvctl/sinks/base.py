"""Abstract base class for endpoint sinks.

This module defines:

- SinkConfig: Pydantic model describing the configured sink (alias or dotted
  class path plus sink-specific config).
- BaseEndpointSink: Interface every sink implements. The reconciliation loop
  only ever calls ``upsert``. The CLI calls ``health_check`` once after
  building the sink (a failed check is fatal at startup) and ``close`` on
  exit; ``get`` reads stored state back.

Sinks apply replace-style upserts: the stored object becomes exactly the
object passed in. Sinks never delete objects, including objects for domains
that were removed from configuration.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from .. import MANAGER_NAME
from ..errors import SinkError
from ..models import EndpointObject
from ..synth import LABEL_MANAGED_BY


class SinkConfig(BaseModel):
    """Brief: Typed configuration model for the endpoint sink.

    Inputs (constructor fields):
      - module: Sink alias (for example "memory", "manifest", "log") or a
        fully-qualified dotted path to a BaseEndpointSink subclass.
      - config: Free-form mapping passed to the sink constructor as keyword
        arguments. Keys the constructor does not accept are dropped.

    Outputs:
      - SinkConfig instance.
    """

    module: str = Field(default="log", description="Sink alias or dotted path")
    config: Dict[str, Any] = Field(
        default_factory=dict, description="Sink-specific configuration options"
    )

    class Config:
        frozen = True
        extra = "forbid"


class BaseEndpointSink:
    """Brief: Base class for stores that receive synthesized endpoint objects.

    Inputs (constructor):
      - **config: Sink-specific options.

    Outputs:
      - Initialized sink when implemented by a subclass.

    Notes:
      - upsert() must be idempotent: applying the same object twice leaves the
        store unchanged after the first call and returns False the second time.
      - Objects whose managed-by label names another writer are never
        overwritten; upsert raises SinkError instead.
    """

    aliases: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, **config: object) -> None:  # pragma: no cover - interface only
        raise NotImplementedError("BaseEndpointSink.__init__ must be implemented")

    def upsert(self, obj: EndpointObject) -> bool:
        """Brief: Create or replace the stored object for obj.namespace/obj.name.

        Inputs:
          - obj: Complete desired-state EndpointObject.

        Outputs:
          - bool: True when stored state changed, False when it already matched.

        Raises:
          - SinkError on storage failure or ownership conflict.
        """

        raise NotImplementedError("BaseEndpointSink.upsert must be implemented")

    def get(self, namespace: str, name: str) -> Optional[Any]:
        raise NotImplementedError("BaseEndpointSink.get must be implemented")

    def health_check(self) -> bool:
        return True

    def close(self) -> None:
        return None

    @staticmethod
    def ensure_owned(
        existing_labels: Optional[Mapping[str, Any]], obj: EndpointObject
    ) -> None:
        """Brief: Refuse to overwrite an object another writer manages.

        Inputs:
          - existing_labels: Labels of the currently stored object, or None
            when nothing is stored.
          - obj: Object about to be written.

        Outputs:
          - None.

        Raises:
          - SinkError when the stored object carries a different managed-by
            label (or none at all).
        """

        if existing_labels is None:
            return
        owner = existing_labels.get(LABEL_MANAGED_BY)
        if owner != MANAGER_NAME:
            raise SinkError(
                obj.name,
                obj.namespace,
                f"existing object is managed by {owner!r}, not {MANAGER_NAME!r}",
            )
