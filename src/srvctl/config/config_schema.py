"""JSON Schema-based validation for srvctl configuration.

This module centralizes validating the parsed controller configuration using
the JSON Schema document shipped next to it as ``config-schema.json``.
Normalization (variable expansion, camelCase domain keys) runs before the
schema is applied.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
VAR_KEY_PATTERN = re.compile(r"[A-Z_][A-Z0-9_]*")

# camelCase spellings accepted at the top level and on domain entries.
_TOP_LEVEL_KEY_ALIASES = {
    "createService": "create_service",
}
_DOMAIN_KEY_ALIASES = {
    "serviceName": "service_name",
    "sliceType": "slice_type",
}


def _normalize_variables_for_validation(cfg: Dict[str, Any]) -> None:
    """Brief: Expand top-level `vars` into the config and remove the group.

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - Replaces `${KEY}` occurrences inside strings.
      - If a string value is exactly `$KEY` or `${KEY}`, the value is replaced
        with the variable's underlying value (list/dict/int/etc.).
      - A list item that injects a list variable is spliced into the list.
      - The `vars` group itself is removed after expansion so JSON Schema
        validation does not reject it.

    Notes:
      - Keys are not substituted, only values.
      - Cycles in variables raise ValueError.
    """

    variables = cfg.get("vars")
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")

    for k in variables.keys():
        if not isinstance(k, str):
            raise ValueError("config.vars keys must be strings")
        if not VAR_KEY_PATTERN.fullmatch(k):
            raise ValueError(f"config.vars key {k!r} must match [A-Z_][A-Z0-9_]*")

    resolved: Dict[str, Any] = {}

    def _resolve_var(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            cycle = " -> ".join(stack + [key])
            raise ValueError(f"config.vars contains a cycle: {cycle}")
        if key not in variables:
            raise KeyError(key)

        stack.append(key)
        value = _expand_obj(variables[key], stack)
        stack.pop()

        resolved[key] = value
        return value

    def _injection_var_name(text: str) -> Optional[str]:
        if text.startswith("${") and text.endswith("}") and len(text) > 3:
            candidate = text[2:-1]
            if candidate in variables:
                return candidate
        if text.startswith("$") and len(text) > 1 and text[1:] in variables:
            return text[1:]
        return None

    def _expand_string(text: str, stack: List[str]) -> Any:
        whole = _injection_var_name(text)
        if whole is not None:
            return copy.deepcopy(_resolve_var(whole, stack))

        def _repl(match: re.Match[str]) -> str:
            try:
                v = _resolve_var(match.group(1), stack)
            except KeyError:
                return match.group(0)
            if isinstance(v, bool):
                return "true" if v else "false"
            if v is None:
                return "null"
            if isinstance(v, (int, float, str)):
                return str(v)
            return json.dumps(v)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand_obj(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            out: List[Any] = []
            for item in obj:
                if isinstance(item, str):
                    expanded = _expand_string(item, stack)
                    if _injection_var_name(item) is not None and isinstance(
                        expanded, list
                    ):
                        out.extend(expanded)
                    else:
                        out.append(expanded)
                    continue
                out.append(_expand_obj(item, stack))
            return out
        if isinstance(obj, dict):
            return {k: _expand_obj(v, stack) for k, v in obj.items()}
        return obj

    # Resolve every variable first so cycles surface even when unused.
    for k in list(variables.keys()):
        _resolve_var(str(k), [])

    for top_key in list(cfg.keys()):
        if top_key == "vars":
            continue
        cfg[top_key] = _expand_obj(cfg[top_key], [])

    cfg.pop("vars", None)


def normalize_config_keys(cfg: Dict[str, Any]) -> None:
    """Brief: Rewrite camelCase keys and lowercase enum-like values.

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).

    Outputs:
      - None.

    Notes:
      - ``createService``, ``serviceName`` and ``sliceType`` are accepted for
        compatibility with existing controller configs; when both spellings
        are present the snake_case one wins.
      - Idempotent; build_controller_config() runs it again on plain dicts.
    """

    for camel, snake in _TOP_LEVEL_KEY_ALIASES.items():
        if camel in cfg:
            value = cfg.pop(camel)
            cfg.setdefault(snake, value)

    mode = cfg.get("endpoint_mode")
    if isinstance(mode, str):
        cfg["endpoint_mode"] = mode.strip().lower()

    domains = cfg.get("domains")
    if not isinstance(domains, list):
        return

    for entry in domains:
        if not isinstance(entry, dict):
            continue
        for camel, snake in _DOMAIN_KEY_ALIASES.items():
            if camel in entry:
                value = entry.pop(camel)
                entry.setdefault(snake, value)
        slice_type = entry.get("slice_type")
        if isinstance(slice_type, str):
            entry["slice_type"] = slice_type.strip().lower()


def get_default_schema_path() -> Path:
    """Brief: Path of the schema shipped with the package."""

    return Path(__file__).resolve().with_name("config-schema.json")


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> tuple[List[ValidationError], List[ValidationError]]:
    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if getattr(err, "validator", None) in {
            "additionalProperties",
            "unevaluatedProperties",
        }:
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = "./config.yaml",
    unknown_keys: str = "warn",
) -> None:
    """Brief: Normalize and validate a parsed configuration mapping.

    Inputs:
      - cfg: Dict loaded from YAML or TOML (mutated in-place by normalization).
      - schema_path: Optional explicit path to a JSON Schema file. When omitted,
        the packaged ``config-schema.json`` is used.
      - config_path: Optional path string used only for error messages.
      - unknown_keys: Policy for keys not described by the schema:

        - "ignore": ignore extra-property errors entirely.
        - "warn": (default) log a warning listing the offending paths.
        - "error": treat extra-property errors as fatal.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when non-extra validation fails, when ``unknown_keys`` is
        "error" and extra keys exist, or when variables are invalid.
      - OSError/json.JSONDecodeError/jsonschema.SchemaError: when the schema cannot
        be loaded; an unusable schema is a packaging error, not a config one.

    Example:
      >>> validate_config({"domains": [{"hostname": "_x._tcp.example.com",
      ...                               "service_name": "x"}]})
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    _normalize_variables_for_validation(cfg)
    normalize_config_keys(cfg)

    schema = _load_schema(schema_path)
    Draft202012Validator.check_schema(schema)
    validator = Draft202012Validator(schema)
    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)

    # Any non-extra failure is fatal; report extra keys alongside it.
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "ignore":
        return None
    if unknown_keys == "warn":
        logger.warning(message)
        return None
    raise ValueError(message)
