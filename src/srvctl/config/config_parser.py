"""Configuration parsing and wiring helpers for srvctl.

Brief:
  This module contains the configuration utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML or TOML config files (selected by extension)
    - merging variables from config/env/CLI
    - JSON Schema validation (including variable expansion performed by
      validate_config)
    - the typed ControllerConfig model
    - building the resolver, sink and Reconciler from a ControllerConfig

Inputs:
  - Config file paths and parsed config dicts

Outputs:
  - ControllerConfig instances and the wired Reconciler
"""

from __future__ import annotations

import copy
import logging
import os
import tomllib
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, validator

from ..models import DNS_LABEL_RE, DomainSpec, EndpointKind, OwnerReference
from ..reconcile import DEFAULT_POLL_INTERVAL_SECONDS, Reconciler
from ..resolver import DnsPythonResolver, ResolutionEngine, ResolverCapability
from ..sinks import BaseEndpointSink, SinkConfig, load_sink
from ..stats import ReconcileStats
from ..synth import EndpointSynthesizer
from .config_schema import VAR_KEY_PATTERN, normalize_config_keys, validate_config

logger = logging.getLogger(__name__)

ENV_VAR_PREFIX = "SRVCTL_"

YAML_EXTENSIONS = (".yaml", ".yml")
TOML_EXTENSIONS = (".toml",)


class ResolverConfig(BaseModel):
    """Brief: DNS resolver settings.

    Inputs (constructor fields):
      - nameservers: Explicit nameserver IPs; empty uses the system resolver.
      - port: Nameserver port.
      - timeout_seconds: Per-try timeout.
      - lifetime_seconds: Overall time budget for one query.
      - resolv_conf: Alternate resolv.conf path.
      - max_workers: Concurrent A lookups per SRV name.

    Outputs:
      - ResolverConfig instance.
    """

    nameservers: List[str] = Field(default_factory=list)
    port: int = Field(default=53, ge=1, le=65535)
    timeout_seconds: float = Field(default=2.0, gt=0)
    lifetime_seconds: float = Field(default=5.0, gt=0)
    resolv_conf: Optional[str] = None
    max_workers: int = Field(default=8, ge=1)

    class Config:
        frozen = True
        extra = "forbid"


class StatisticsConfig(BaseModel):
    """Per-pass statistics logging."""

    enabled: bool = True
    log_level: str = "info"

    class Config:
        frozen = True
        extra = "forbid"


class ControllerConfig(BaseModel):
    """Brief: Typed, immutable controller configuration.

    Inputs (constructor fields):
      - domains: DomainSpec entries; service_name values must be unique.
      - namespace: Namespace stamped on every synthesized object; a DNS-1123
        label, since it is also used as a directory name by file sinks.
      - endpoint_mode: "slice" (EndpointSlice) or "endpoints" (legacy Endpoints).
      - poll_interval_seconds: Sleep between reconcile passes.
      - cycle_timeout_seconds: Optional deadline for one pass.
      - max_workers: Domains reconciled concurrently within one pass.
      - stale_policy: What happens to objects of removed domains; only
        "retain" is implemented.
      - create_service: Accepted and ignored; Service objects are not managed.
      - resolver: ResolverConfig.
      - sink: SinkConfig.
      - owner_references: OwnerReference entries stamped on every object.
      - logging: Raw mapping handed to init_logging().
      - statistics: StatisticsConfig.

    Outputs:
      - ControllerConfig instance.
    """

    domains: List[DomainSpec] = Field(default_factory=list)
    namespace: str = Field(default="default", min_length=1, max_length=63)
    endpoint_mode: EndpointKind = EndpointKind.SLICE
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    cycle_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    max_workers: int = Field(default=4, ge=1)
    stale_policy: str = "retain"
    create_service: bool = False
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    owner_references: List[OwnerReference] = Field(default_factory=list)
    logging: Dict[str, Any] = Field(default_factory=dict)
    statistics: StatisticsConfig = Field(default_factory=StatisticsConfig)

    class Config:
        frozen = True
        extra = "ignore"

    @validator("domains")
    def _unique_service_names(cls, v):  # noqa: N805
        seen = set()
        duplicates = set()
        for spec in v:
            if spec.service_name in seen:
                duplicates.add(spec.service_name)
            seen.add(spec.service_name)
        if duplicates:
            raise ValueError(f"duplicate service_name values: {sorted(duplicates)}")
        return v

    @validator("namespace")
    def _check_namespace(cls, v):  # noqa: N805
        if not DNS_LABEL_RE.fullmatch(v):
            raise ValueError(
                f"namespace {v!r} must consist of lowercase alphanumerics or '-', "
                "and start and end with an alphanumeric character"
            )
        return v

    @validator("stale_policy")
    def _only_retain(cls, v):  # noqa: N805
        if v != "retain":
            raise ValueError(f"stale_policy {v!r} is not supported (only 'retain')")
        return v

    @validator("endpoint_mode", pre=True)
    def _lower_mode(cls, v):  # noqa: N805
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @validator("sink", pre=True)
    def _sink_from_string(cls, v):  # noqa: N805
        if v is None:
            return SinkConfig()
        if isinstance(v, str):
            return {"module": v}
        return v


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing a YAML scalar/list/dict.

    Outputs:
      - Parsed value; the original string on parse errors.
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-V/--var) overrides environment overrides config-file variables.

    Notes:
      - Environment variables are only considered when prefixed with
        ``SRVCTL_``; the prefix is stripped (SRVCTL_NS -> NS). SRVCTL_LOG is
        the log-level override and is not a variable.
      - Values are parsed as YAML so list/dict/int/bool values can be provided.

    Example:
      >>> cfg = {'vars': {'NS': 'default'}}
      >>> parse_config_variables(cfg, cli_vars=['NS=mongo'], environ={})['NS']
      'mongo'
    """

    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = os.environ if environ is None else environ
    for k, v in env.items():
        if not k.startswith(ENV_VAR_PREFIX) or k == "SRVCTL_LOG":
            continue
        name = k[len(ENV_VAR_PREFIX) :]
        if VAR_KEY_PATTERN.fullmatch(name):
            merged[name] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -V/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not VAR_KEY_PATTERN.fullmatch(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    if merged:
        cfg["vars"] = merged
    return merged


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Load a YAML or TOML file into a mapping.

    Inputs:
      - config_path: Path ending in .yaml, .yml or .toml.

    Outputs:
      - dict: Top-level mapping.

    Raises:
      - FileNotFoundError: When the file does not exist.
      - ValueError: For unsupported extensions, empty files, parse errors or
        a non-mapping root.
    """

    ext = os.path.splitext(config_path)[1].lower()
    if ext not in YAML_EXTENSIONS + TOML_EXTENSIONS:
        raise ValueError(
            f"Unsupported config file extension {ext or '<none>'!r} for "
            f"{config_path} (expected .yaml, .yml or .toml)"
        )

    with open(config_path, "rb") as f:
        raw = f.read()
    if not raw.strip():
        raise ValueError(f"Configuration file {config_path} is empty")

    try:
        if ext in TOML_EXTENSIONS:
            cfg = tomllib.loads(raw.decode("utf-8"))
        else:
            cfg = yaml.safe_load(raw)
    except (tomllib.TOMLDecodeError, yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ValueError(f"Failed to parse {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    return cfg


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    unknown_keys: str = "warn",
) -> Dict[str, Any]:
    """Brief: Read, variable-merge and schema-validate a config file.

    Inputs:
      - config_path: Path to the YAML or TOML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).
      - unknown_keys: ignore, warn or error; see validate_config().

    Outputs:
      - dict: Normalized configuration mapping with variables expanded.
    """

    cfg = read_config_file(config_path)
    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    validate_config(cfg, config_path=config_path, unknown_keys=unknown_keys)
    return cfg


def _known_keys(model: type, entry: Dict[str, Any], where: str) -> Dict[str, Any]:
    fields = set(getattr(model, "model_fields", None) or model.__fields__)
    dropped = sorted(k for k in entry if k not in fields)
    if dropped:
        logger.debug("Ignoring unknown keys in %s: %s", where, dropped)
    return {k: v for k, v in entry.items() if k in fields}


def build_controller_config(cfg: Mapping[str, Any]) -> ControllerConfig:
    """Brief: Build the typed ControllerConfig from a normalized mapping.

    Inputs:
      - cfg: Mapping returned by parse_config_file() (or an equivalent dict).

    Outputs:
      - ControllerConfig.

    Raises:
      - pydantic.ValidationError (a ValueError subclass) for invalid values,
        including duplicate service_name values.

    Notes:
      - Unknown keys on domain, resolver and owner reference entries were
        already reported by validate_config() and are dropped here.
    """

    data = copy.deepcopy(dict(cfg))
    normalize_config_keys(data)
    domains = data.get("domains") or []
    data["domains"] = [
        _known_keys(DomainSpec, dict(d), f"domains[{i}]") if isinstance(d, dict) else d
        for i, d in enumerate(domains)
    ]
    if isinstance(data.get("resolver"), dict):
        data["resolver"] = _known_keys(ResolverConfig, data["resolver"], "resolver")
    if isinstance(data.get("statistics"), dict):
        data["statistics"] = _known_keys(
            StatisticsConfig, data["statistics"], "statistics"
        )
    refs = data.get("owner_references") or []
    data["owner_references"] = [
        _known_keys(OwnerReference, dict(r), f"owner_references[{i}]")
        if isinstance(r, dict)
        else r
        for i, r in enumerate(refs)
    ]
    if data.get("logging") is None:
        data["logging"] = {}
    return ControllerConfig(**data)


def load_config(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    unknown_keys: str = "warn",
) -> ControllerConfig:
    """Brief: parse_config_file() followed by build_controller_config()."""

    cfg = parse_config_file(
        config_path, cli_vars=cli_vars, environ=environ, unknown_keys=unknown_keys
    )
    config = build_controller_config(cfg)
    if config.create_service:
        logger.warning("create_service is set but Service objects are not managed")
    if not config.domains:
        logger.warning("No domains configured in %s", config_path)
    return config


def build_resolver(resolver_cfg: Union[ResolverConfig, None] = None) -> DnsPythonResolver:
    """Brief: Construct the dnspython-backed resolver.

    Inputs:
      - resolver_cfg: ResolverConfig or None for defaults.

    Outputs:
      - DnsPythonResolver.

    Raises:
      - dns.resolver.NoResolverConfiguration when no nameserver can be found;
        the CLI treats this as fatal.
    """

    rc = resolver_cfg or ResolverConfig()
    return DnsPythonResolver(
        rc.nameservers or None,
        port=rc.port,
        timeout_seconds=rc.timeout_seconds,
        lifetime_seconds=rc.lifetime_seconds,
        resolv_conf=rc.resolv_conf,
    )


def build_reconciler(
    config: ControllerConfig,
    *,
    resolver: Optional[ResolverCapability] = None,
    sink: Optional[BaseEndpointSink] = None,
    stats: Optional[ReconcileStats] = None,
) -> Reconciler:
    """Brief: Wire resolver, engine, synthesizer and sink into a Reconciler.

    Inputs:
      - config: ControllerConfig.
      - resolver: Optional resolver capability; built from config.resolver
        when omitted.
      - sink: Optional sink; built from config.sink when omitted.
      - stats: Optional shared ReconcileStats.

    Outputs:
      - Reconciler ready for run_once()/run_forever().
    """

    stats = stats if stats is not None else ReconcileStats()
    if resolver is None:
        resolver = build_resolver(config.resolver)
    if sink is None:
        sink = load_sink(config.sink)

    engine = ResolutionEngine(
        resolver, max_workers=config.resolver.max_workers, stats=stats
    )
    synthesizer = EndpointSynthesizer(
        namespace=config.namespace,
        kind=config.endpoint_mode,
        owner_refs=config.owner_references,
    )
    report_level = config.statistics.log_level if config.statistics.enabled else None
    return Reconciler(
        config.domains,
        engine,
        synthesizer,
        sink,
        poll_interval_seconds=config.poll_interval_seconds,
        max_workers=config.max_workers,
        cycle_timeout_seconds=config.cycle_timeout_seconds,
        stats=stats,
        report_level=report_level,
    )
