from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from signal import SIGINT, SIGTERM, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from nextdns_operator.adapters.manifests import ManifestError, dump_resource
from nextdns_operator.app import (
    apply_manifests,
    delete_resource,
    get_resources,
    open_store,
    reconcile_all,
    run_operator,
)
from nextdns_operator.common.logging import parse_log_level
from nextdns_operator.config import ConfigurationError, configure_logging
from nextdns_operator.domain.model import DEFAULT_NAMESPACE, Kind
from nextdns_operator.domain.ports import ResourceNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

KIND_CHOICES = [kind.value for kind in Kind]


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile NextDNS profiles from manifests")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level name such as DEBUG or INFO (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--database-uri",
        type=str,
        default=None,
        help="SQLAlchemy URI of the resource store (default: $DATABASE_URI or the data dir)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Run the controllers until interrupted")
    subparsers.add_parser("reconcile", help="Reconcile every resource once and exit")

    apply = subparsers.add_parser("apply", help="Create or update resources from manifests")
    apply.add_argument(
        "-f",
        "--filename",
        dest="paths",
        type=Path,
        action="append",
        required=True,
        help="Manifest file or directory (repeatable)",
    )

    delete = subparsers.add_parser("delete", help="Delete a resource")
    delete.add_argument("kind", choices=KIND_CHOICES)
    delete.add_argument("name")
    delete.add_argument("-n", "--namespace", default=DEFAULT_NAMESPACE)

    get = subparsers.add_parser("get", help="Show stored resources and their status")
    get.add_argument("kind", choices=KIND_CHOICES)
    get.add_argument("name", nargs="?")
    get.add_argument("-n", "--namespace", default=None)
    get.add_argument("-o", "--output", choices=["yaml", "json"], default="yaml")

    return parser.parse_args(list(argv))


def _print_resources(args: argparse.Namespace) -> None:
    resources = get_resources(args.kind, name=args.name, namespace=args.namespace)
    documents = [dump_resource(resource, fmt=args.output) for resource in resources]
    separator = "\n" if args.output == "json" else "---\n"
    sys.stdout.write(separator.join(documents))
    if documents and not documents[-1].endswith("\n"):
        sys.stdout.write("\n")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    try:
        level = parse_log_level(parsed_args.log_level or os.getenv("LOG_LEVEL"))
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)
    configure_logging(level=level)

    try:
        open_store(parsed_args.database_uri)
        if parsed_args.command == "run":
            run_operator()
        elif parsed_args.command == "reconcile":
            reconcile_all()
        elif parsed_args.command == "apply":
            applied = apply_manifests(parsed_args.paths)
            log.info("Applied %d resource(s)", len(applied))
        elif parsed_args.command == "delete":
            delete_resource(parsed_args.kind, parsed_args.name, parsed_args.namespace)
        elif parsed_args.command == "get":
            _print_resources(parsed_args)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except (ManifestError, ConfigurationError):
        log.exception("Invalid input")
        sys.exit(2)
    except ResourceNotFoundError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) and SIGTERM gracefully."""
    log.info("Shutting down on signal")
    sys.exit(0)


def entrypoint() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    signal(SIGTERM, sigint_handler)
    main()


if __name__ == "__main__":
    entrypoint()
