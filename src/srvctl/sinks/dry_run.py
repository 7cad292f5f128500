from __future__ import annotations

"""Log-only endpoint sink.

Inputs:
  - EndpointObject instances from the reconciliation loop.

Outputs:
  - One log line per changed object containing the rendered manifest as JSON.
    Nothing is persisted outside the process.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from ..models import EndpointObject
from .base import BaseEndpointSink
from .manifest import render_manifest


class LogSink(BaseEndpointSink):
    """Dry-run sink that logs desired state instead of writing it.

    Inputs (constructor):
        log_level: Logging level name used for emitted manifests (default info).
        logger_name: Logger name (default "srvctl.sinks.dry_run").

    Outputs:
        LogSink instance; upsert() returns False for objects identical to the
        last one logged under the same key.
    """

    aliases = ("log", "dry_run", "stdout")

    def __init__(
        self,
        log_level: str = "info",
        logger_name: str = "srvctl.sinks.dry_run",
        **_: Any,
    ) -> None:
        self.logger = logging.getLogger(logger_name)
        self.log_level = logging.getLevelName(str(log_level).upper())
        if not isinstance(self.log_level, int):
            self.log_level = logging.INFO
        self._lock = threading.Lock()
        self._seen: Dict[Tuple[str, str], str] = {}

    def upsert(self, obj: EndpointObject) -> bool:
        key = (obj.namespace, obj.name)
        fingerprint = obj.fingerprint()
        with self._lock:
            if self._seen.get(key) == fingerprint:
                return False
            self._seen[key] = fingerprint
        self.logger.log(
            self.log_level,
            "upsert %s/%s: %s",
            obj.namespace,
            obj.name,
            json.dumps(render_manifest(obj), sort_keys=True, separators=(",", ":")),
        )
        return True

    def get(self, namespace: str, name: str) -> Optional[str]:
        with self._lock:
            return self._seen.get((namespace, name))
