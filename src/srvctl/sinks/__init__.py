from __future__ import annotations

"""Endpoint sink abstraction layer.

Inputs:
  - None directly; this package is imported by code that needs a sink
    interface or wants to build the configured sink.

Outputs:
  - Exposes the base sink interface, its configuration model and
    load_sink(), which builds a concrete sink from configuration.
"""

import inspect
import logging
from typing import Any, Mapping, Optional, Union

from .base import BaseEndpointSink, SinkConfig
from .registry import get_sink_class

__all__ = [
    "BaseEndpointSink",
    "SinkConfig",
    "load_sink",
]

logger = logging.getLogger(__name__)


def _accepted_kwargs(cls: type, options: Mapping[str, Any]) -> dict[str, Any]:
    """Brief: Filter options down to keyword arguments cls.__init__ accepts.

    Inputs:
      - cls: Sink class.
      - options: Raw configuration mapping.

    Outputs:
      - dict of accepted options; unknown keys are dropped with a warning.
    """

    sig = inspect.signature(cls.__init__)
    valid = {
        name
        for name, param in sig.parameters.items()
        if name != "self"
        and param.kind
        in {inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY}
    }
    dropped = sorted(k for k in options if k not in valid)
    if dropped:
        logger.warning("Ignoring unknown %s options: %s", cls.__name__, dropped)
    return {k: v for k, v in options.items() if k in valid}


def load_sink(sink_cfg: Optional[Union[SinkConfig, Mapping[str, Any]]]) -> BaseEndpointSink:
    """Brief: Construct the configured endpoint sink.

    Inputs:
      - sink_cfg: SinkConfig, a raw mapping with ``module``/``config`` keys, or
        None (defaults to the log-only sink).

    Outputs:
      - BaseEndpointSink instance.

    Raises:
      - KeyError/ValueError/TypeError when the sink cannot be resolved.
      - Any exception raised by the sink constructor (treated as fatal at
        startup by the CLI).
    """

    if sink_cfg is None:
        cfg = SinkConfig()
    elif isinstance(sink_cfg, SinkConfig):
        cfg = sink_cfg
    else:
        cfg = SinkConfig(**dict(sink_cfg))

    cls = get_sink_class(cfg.module)
    sink = cls(**_accepted_kwargs(cls, cfg.config or {}))
    logger.info("Using endpoint sink %s (%s)", cls.__name__, cfg.module)
    return sink
