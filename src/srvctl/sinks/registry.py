from __future__ import annotations

"""Registry and alias resolution for endpoint sinks.

Inputs:
  - None directly; helper functions are used by load_sink() to discover
    BaseEndpointSink implementations and resolve sink identifiers.

Outputs:
  - discover_sinks(): Build a mapping of normalized aliases to
    BaseEndpointSink subclasses by walking srvctl.sinks.* modules.
  - get_sink_class(): Resolve an identifier to a concrete BaseEndpointSink
    subclass, supporting both aliases and dotted import paths.
"""

import difflib
import functools
import importlib
import inspect
import pkgutil
import re
from typing import Dict, Iterable, Type

from .base import BaseEndpointSink

_CAMEL_1 = re.compile(r"(.)([A-Z][a-z]+)")
_CAMEL_2 = re.compile(r"([a-z0-9])([A-Z])")


def _camel_to_snake(name: str) -> str:
    s1 = _CAMEL_1.sub(r"\1_\2", name)
    s2 = _CAMEL_2.sub(r"\1_\2", s1)
    return s2.lower()


def _default_alias_for(cls: Type[BaseEndpointSink]) -> str:
    """Brief: Derive a default alias for a BaseEndpointSink subclass.

    Inputs:
      - cls: Concrete BaseEndpointSink subclass.

    Outputs:
      - snake_case alias derived from the class name with a trailing "Sink"
        stripped (MemorySink -> "memory").
    """

    name = cls.__name__
    if name.endswith("Sink") and len(name) > len("Sink"):
        name = name[: -len("Sink")]
    return _camel_to_snake(name)


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


def _iter_sink_modules(package_name: str = "srvctl.sinks") -> Iterable[str]:
    pkg = importlib.import_module(package_name)
    for modinfo in pkgutil.walk_packages(pkg.__path__, pkg.__name__ + "."):
        yield modinfo.name


@functools.lru_cache(maxsize=8)
def discover_sinks(package_name: str = "srvctl.sinks") -> Dict[str, Type[BaseEndpointSink]]:
    """Brief: Discover BaseEndpointSink subclasses and register them by alias.

    Inputs:
      - package_name: Package path to scan for sinks.

    Outputs:
      - Dict[str, Type[BaseEndpointSink]] mapping normalized aliases to classes.

    Raises:
      - ValueError when two different classes claim the same alias.
    """

    registry: Dict[str, Type[BaseEndpointSink]] = {}

    for modname in _iter_sink_modules(package_name):
        module = importlib.import_module(modname)

        for _, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, BaseEndpointSink) or obj is BaseEndpointSink:
                continue

            claimed = set(_normalize(a) for a in (getattr(obj, "aliases", ()) or ()))
            claimed.add(_normalize(_default_alias_for(obj)))

            for alias in claimed:
                if not alias:
                    continue
                if alias in registry and registry[alias] is not obj:
                    other = registry[alias]
                    raise ValueError(
                        "Duplicate sink alias '%s' claimed by %s.%s and %s.%s"
                        % (
                            alias,
                            obj.__module__,
                            obj.__name__,
                            other.__module__,
                            other.__name__,
                        )
                    )
                registry[alias] = obj

    return registry


def get_sink_class(
    identifier: str, registry: Dict[str, Type[BaseEndpointSink]] | None = None
) -> Type[BaseEndpointSink]:
    """Brief: Resolve identifier to a BaseEndpointSink subclass.

    Inputs:
      - identifier: Dotted import path ("pkg.mod.Class") or alias.
      - registry: Optional precomputed alias registry from discover_sinks.

    Outputs:
      - BaseEndpointSink subclass corresponding to the identifier.

    Raises:
      - ValueError/TypeError when a dotted path is invalid or does not name a
        BaseEndpointSink subclass.
      - KeyError for unknown aliases, listing known aliases and suggestions.
    """

    ident = str(identifier or "").strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        if not modname or not classname:
            raise ValueError(f"Invalid sink path '{identifier}'")
        module = importlib.import_module(modname)
        cls = getattr(module, classname)
        if not inspect.isclass(cls) or not issubclass(cls, BaseEndpointSink):
            raise TypeError(f"{identifier} is not a BaseEndpointSink subclass")
        return cls

    reg = registry or discover_sinks()
    key = _normalize(ident)
    try:
        return reg[key]
    except KeyError:
        suggestions = difflib.get_close_matches(key, list(reg.keys()), n=3)
        raise KeyError(
            "Unknown sink alias '%s'. Known aliases: %s. Suggestions: %s"
            % (identifier, ", ".join(sorted(reg.keys())), suggestions)
        )
