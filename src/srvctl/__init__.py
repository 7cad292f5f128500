"""srvctl package"""

import importlib.metadata as importlib_metadata

try:
    SRVCTL_VERSION = importlib_metadata.version("srvctl")
except Exception:  # pragma: no cover - not installed (source checkout)
    SRVCTL_VERSION = "unknown"

# Identity written into the managed-by labels of every synthesized object.
MANAGER_NAME = "srvctl"
MANAGER_DOMAIN = "srvctl.tsp.tc"
