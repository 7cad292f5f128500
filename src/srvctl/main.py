from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List

import dns.resolver

from . import SRVCTL_VERSION
from .config.config_parser import build_reconciler, build_resolver, load_config
from .config.logging_config import init_logging
from .sinks import load_sink

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PASS_FAILED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="srvctl",
        description="Reconcile DNS SRV records into Kubernetes endpoint objects",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to YAML or TOML config (default: config.yaml)",
    )
    parser.add_argument(
        "-l",
        "--log-level",
        default=None,
        help="Override logging.level (trace, debug, info, warn, error, crit)",
    )
    parser.add_argument(
        "-V",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set a config variable; repeatable, overrides SRVCTL_* env vars",
    )
    parser.add_argument(
        "--unknown-keys",
        choices=("ignore", "warn", "error"),
        default="warn",
        help="How to treat config keys the schema does not describe",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconcile pass and exit (exit code 2 if any domain failed)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate the configuration and exit",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {SRVCTL_VERSION}"
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the controller.
    Parses arguments, loads configuration, builds the resolver and sink, and
    runs the reconciliation loop.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown (or a clean --once pass), 1 for fatal
        startup errors, 2 when --once finished with failed domains.

    Example use:
        CLI:
            PYTHONPATH=src python -m srvctl --config config.yaml --once
    """
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(
            args.config, cli_vars=args.var, unknown_keys=args.unknown_keys
        )
    except (OSError, ValueError) as exc:
        print(f"srvctl: {exc}", file=sys.stderr)
        return EXIT_FATAL

    init_logging(config.logging, level_override=args.log_level)
    logger = logging.getLogger("srvctl.main")
    logger.info(
        "srvctl %s loaded %d domain(s) from %s",
        SRVCTL_VERSION,
        len(config.domains),
        args.config,
    )

    if args.check_config:
        print(f"{args.config}: OK ({len(config.domains)} domain(s))")
        return EXIT_OK

    try:
        resolver = build_resolver(config.resolver)
    except dns.resolver.NoResolverConfiguration as exc:
        logger.error("No usable resolver configuration: %s", exc)
        return EXIT_FATAL

    try:
        sink = load_sink(config.sink)
    except Exception as exc:
        logger.error("Failed to build sink %r: %s", config.sink.module, exc)
        return EXIT_FATAL

    if not sink.health_check():
        logger.error("Sink %r failed its health check", config.sink.module)
        sink.close()
        return EXIT_FATAL

    try:
        reconciler = build_reconciler(config, resolver=resolver, sink=sink)
        if args.once:
            report = reconciler.run_once()
            return EXIT_OK if report.ok else EXIT_PASS_FAILED

        def _stop_handler(signum, _frame):
            logger.info(
                "Received %s; stopping after the current pass",
                signal.Signals(signum).name,
            )
            reconciler.stop()

        previous = {}
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[sig] = signal.signal(sig, _stop_handler)
            except (ValueError, OSError):  # pragma: no cover - non-main thread
                logger.warning("Could not install %s handler", sig.name)

        try:
            reconciler.run_forever()
        finally:
            for sig, handler in previous.items():
                if handler is None:
                    continue
                signal.signal(sig, handler)
        return EXIT_OK
    finally:
        sink.close()


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
