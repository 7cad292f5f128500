from __future__ import annotations

from typing import Optional, Tuple


def _underscore_label(labels: list[str], index: int) -> Optional[str]:
    if index >= len(labels):
        return None
    label = labels[index]
    if not label.startswith("_") or len(label) < 2:
        return None
    return label[1:]


def parse_labels(name: str) -> Tuple[Optional[str], Optional[str]]:
    """Brief: Recover (service, protocol) from an SRV-style owner name.

    Inputs:
      - name: Dotted DNS name such as ``_mongodb._tcp.cluster0.example.net.``.

    Outputs:
      - (service, protocol): Each element is the label with its leading
        underscore removed, or None when the label is missing or is not
        underscore-prefixed. Never raises.

    Example:
      >>> parse_labels("_mongo._tcp.svc.example.")
      ('mongo', 'tcp')
      >>> parse_labels("www.example.com")
      (None, None)
    """

    if not name or "." not in name:
        return None, None
    labels = name.split(".")
    return _underscore_label(labels, 0), _underscore_label(labels, 1)
