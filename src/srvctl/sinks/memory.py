from __future__ import annotations

"""In-process endpoint sink.

Inputs:
  - EndpointObject instances from the reconciliation loop.

Outputs:
  - A thread-safe dict keyed by (namespace, name). Useful for embedding the
    engine in another process and as the reference sink for tests.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from ..errors import SinkError
from ..models import EndpointObject
from .base import BaseEndpointSink

logger = logging.getLogger(__name__)


class MemorySink(BaseEndpointSink):
    """In-memory sink with replace-style, idempotent upserts.

    Inputs (constructor):
        None (extra keyword options are ignored).

    Outputs:
        MemorySink instance.

    Example:
        >>> sink = MemorySink()
        >>> sink.upsert(obj)   # True, created
        >>> sink.upsert(obj)   # False, unchanged
    """

    aliases = ("memory", "in_memory")

    def __init__(self, **_: Any) -> None:
        self._lock = threading.Lock()
        self._objects: Dict[Tuple[str, str], EndpointObject] = {}
        self.writes = 0

    def upsert(self, obj: EndpointObject) -> bool:
        key = (obj.namespace, obj.name)
        with self._lock:
            existing = self._objects.get(key)
            if existing == obj:
                return False
            self.ensure_owned(
                existing.label_map() if existing is not None else None, obj
            )
            self._objects[key] = obj
            self.writes += 1
        logger.debug(
            "MemorySink: stored %s/%s (%d address(es))",
            obj.namespace,
            obj.name,
            len(obj.addresses),
        )
        return True

    def put(self, obj: EndpointObject) -> None:
        """Store obj unconditionally, bypassing the ownership check."""
        with self._lock:
            self._objects[(obj.namespace, obj.name)] = obj

    def get(self, namespace: str, name: str) -> Optional[EndpointObject]:
        with self._lock:
            return self._objects.get((namespace, name))

    def objects(self) -> List[EndpointObject]:
        with self._lock:
            return [self._objects[k] for k in sorted(self._objects)]

    def close(self) -> None:
        with self._lock:
            self._objects.clear()


class FailingSink(MemorySink):
    """Sink that rejects upserts for selected names (fault injection).

    Inputs (constructor):
        fail_names: Names whose upsert raises SinkError.
        healthy: Value reported by health_check().

    Outputs:
        FailingSink instance; other names behave like MemorySink.
    """

    aliases = ("failing",)

    def __init__(
        self,
        fail_names: Optional[List[str]] = None,
        healthy: bool = True,
        **_: Any,
    ) -> None:
        super().__init__()
        self.fail_names = set(fail_names or [])
        self.healthy = bool(healthy)

    def health_check(self) -> bool:
        return self.healthy

    def upsert(self, obj: EndpointObject) -> bool:
        if obj.name in self.fail_names:
            raise SinkError(obj.name, obj.namespace, "injected failure")
        return super().upsert(obj)
