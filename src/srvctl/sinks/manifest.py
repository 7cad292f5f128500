from __future__ import annotations

"""Kubernetes manifest rendering and the YAML manifest-directory sink.

Inputs:
  - EndpointObject instances from the reconciliation loop.

Outputs:
  - render_manifest(): Kubernetes-shaped dict for an EndpointObject
    (discovery.k8s.io/v1 EndpointSlice or v1 Endpoints).
  - ManifestSink: writes one YAML manifest per object to
    ``<directory>/<namespace>/<name>.yaml`` so a separate applier (kubectl,
    a GitOps controller) can push them to a cluster.
"""

import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

import yaml

from ..errors import SinkError
from ..models import EndpointKind, EndpointObject
from .base import BaseEndpointSink

logger = logging.getLogger(__name__)

_K8S_PROTOCOLS = {"tcp": "TCP", "udp": "UDP", "sctp": "SCTP"}


def _port_entry(obj: EndpointObject) -> Dict[str, Any]:
    port: Dict[str, Any] = {"port": int(obj.port)}
    if obj.port_name:
        port["name"] = obj.port_name.lower()
    protocol = _K8S_PROTOCOLS.get((obj.protocol or "").lower())
    if protocol:
        port["protocol"] = protocol
    return port


def _metadata(obj: EndpointObject) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "name": obj.name,
        "namespace": obj.namespace,
        "labels": obj.label_map(),
    }
    if obj.annotations:
        meta["annotations"] = obj.annotation_map()
    if obj.owner_refs:
        meta["ownerReferences"] = [ref.as_manifest() for ref in obj.owner_refs]
    return meta


def render_manifest(obj: EndpointObject) -> Dict[str, Any]:
    """Brief: Render an EndpointObject as a Kubernetes manifest mapping.

    Inputs:
      - obj: EndpointObject.

    Outputs:
      - dict for ``discovery.k8s.io/v1 EndpointSlice`` (one endpoint per
        address, tagged with the SRV target hostname) when obj.kind is
        EndpointKind.SLICE, or ``v1 Endpoints`` with a single subset otherwise.
    """

    if obj.kind == EndpointKind.SLICE:
        endpoints: List[Dict[str, Any]] = [
            {
                "addresses": [a.address],
                "hostname": a.hostname,
                "conditions": {"ready": True},
            }
            for a in obj.addresses
        ]
        return {
            "apiVersion": "discovery.k8s.io/v1",
            "kind": "EndpointSlice",
            "metadata": _metadata(obj),
            "addressType": obj.address_type,
            "endpoints": endpoints,
            "ports": [_port_entry(obj)],
        }

    return {
        "apiVersion": "v1",
        "kind": "Endpoints",
        "metadata": _metadata(obj),
        "subsets": [
            {
                "addresses": [{"ip": a.address} for a in obj.addresses],
                "ports": [_port_entry(obj)],
            }
        ],
    }


def dump_manifest(obj: EndpointObject) -> str:
    return yaml.safe_dump(render_manifest(obj), sort_keys=True, default_flow_style=False)


class ManifestSink(BaseEndpointSink):
    """Write each object as a YAML manifest file.

    Inputs (constructor):
        directory: Root output directory; created when missing.

    Outputs:
        ManifestSink instance.

    Notes:
        - Files are replaced atomically (temp file + os.replace) so readers
          never observe a partial manifest.
        - An unchanged manifest is not rewritten; upsert() returns False.
        - An existing file whose managed-by label is not srvctl is left alone
          and the upsert fails with SinkError.
    """

    aliases = ("manifest", "manifests", "file")

    def __init__(self, directory: str = "./manifests", **_: Any) -> None:
        self.directory = os.path.abspath(os.path.expanduser(str(directory)))
        self._lock = threading.Lock()
        os.makedirs(self.directory, exist_ok=True)

    def path_for(self, namespace: str, name: str) -> str:
        """Brief: Output path of one object, confined to self.directory.

        Inputs:
          - namespace: Object namespace (subdirectory).
          - name: Object name (file stem).

        Outputs:
          - Absolute path string.

        Raises:
          - SinkError when the joined path resolves outside self.directory.
        """

        path = os.path.realpath(os.path.join(self.directory, namespace, f"{name}.yaml"))
        root = os.path.realpath(self.directory)
        if os.path.commonpath([root, path]) != root or path == root:
            raise SinkError(
                name, namespace, ValueError(f"path {path} escapes {self.directory}")
            )
        return path

    def _read(self, path: str) -> Optional[str]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def upsert(self, obj: EndpointObject) -> bool:
        path = self.path_for(obj.namespace, obj.name)
        text = dump_manifest(obj)
        with self._lock:
            try:
                current = self._read(path)
                if current == text:
                    return False
                if current is not None:
                    existing = yaml.safe_load(current) or {}
                    labels = (existing.get("metadata") or {}).get("labels") or {}
                    self.ensure_owned(labels, obj)
                self._write_atomic(path, text)
            except SinkError:
                raise
            except (OSError, yaml.YAMLError, AttributeError) as exc:
                raise SinkError(obj.name, obj.namespace, exc) from exc
        logger.info("ManifestSink: wrote %s", path)
        return True

    def _write_atomic(self, path: str, text: str) -> None:
        dir_path = os.path.dirname(path)
        os.makedirs(dir_path, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".srvctl-", suffix=".yaml", dir=dir_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def get(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        text = self._read(self.path_for(namespace, name))
        if text is None:
            return None
        return yaml.safe_load(text)

    def health_check(self) -> bool:
        return os.path.isdir(self.directory) and os.access(self.directory, os.W_OK)
