"""Command line entry point: `deploy` and `status`."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, Sequence

import structlog

from contract_deployments.config import load_deployer_key, load_env_file, load_network_settings
from contract_deployments.constants import NETWORK_CONFIG
from contract_deployments.descriptors import load_descriptors
from contract_deployments.exceptions import ConfigurationError, OrchestrationError
from contract_deployments.logging import bind_context, configure_logging
from contract_deployments.orchestrator import Orchestrator
from contract_deployments.paths import get_state_path
from contract_deployments.state import StateStore
from contract_deployments.types import RunReport

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _format_addresses(addresses: Dict[str, str]) -> str:
    if not addresses:
        return "(no deployments)"
    width = max(len(name) for name in addresses)
    return "\n".join(f"{name.ljust(width)}  {address}" for name, address in addresses.items())


def _format_report(report: RunReport) -> str:
    lines = [f"Network: {report.network}"]
    for outcome in report.units:
        line = f"  {outcome.status:<8} {outcome.name}"
        if outcome.address:
            line += f"  {outcome.address}"
        if outcome.reason:
            line += f"  ({outcome.reason})"
        lines.append(line)
    for wiring in report.wiring:
        line = f"  {wiring.status:<8} {wiring.target}.{wiring.method}"
        if wiring.tx_reference:
            line += f"  {wiring.tx_reference}"
        if wiring.reason:
            line += f"  ({wiring.reason})"
        lines.append(line)
    lines.append(f"Transactions submitted: {report.transactions_submitted}")
    return "\n".join(lines)


def _deploy(args: argparse.Namespace) -> int:
    settings = load_network_settings(args.network)
    descriptors = load_descriptors(args.descriptors)
    orchestrator = Orchestrator.from_settings(
        settings,
        descriptors,
        load_deployer_key(),
        state_dir=args.state_dir,
        artifacts_dir=args.artifacts,
        environ=os.environ,
        force=args.force,
        keep_going=args.keep_going,
    )
    bind_context(network=settings.name, deployer=orchestrator.context.deployer)

    report = orchestrator.run(only=args.unit)
    print(_format_report(report))
    print()
    print(_format_addresses(orchestrator.status()))
    return EXIT_OK if report.ok else EXIT_FAILED


def _status(args: argparse.Namespace) -> int:
    if args.network not in NETWORK_CONFIG:
        raise ConfigurationError(f"Unknown network '{args.network}'")
    store = StateStore(get_state_path(args.network, args.state_dir), args.network)
    print(_format_addresses(store.addresses()))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contract-deployments", description="Deploy and wire upgradeable contracts"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env)")
    subparsers = parser.add_subparsers(dest="command")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy and wire units on a network")
    deploy_parser.add_argument("--network", required=True, help="Network name")
    deploy_parser.add_argument(
        "--unit",
        action="append",
        default=None,
        help="Only deploy this unit and its dependencies (repeatable)",
    )
    deploy_parser.add_argument(
        "--descriptors", default="deploy.yaml", help="Descriptor file (default: deploy.yaml)"
    )
    deploy_parser.add_argument("--artifacts", default=None, help="Hardhat artifacts directory")
    deploy_parser.add_argument("--state-dir", default=None, help="State directory")
    deploy_parser.add_argument(
        "--force", action="store_true", help="Redeploy protected units whose arguments changed"
    )
    deploy_parser.add_argument(
        "--keep-going",
        action="store_true",
        help="On failure, continue with units that do not depend on the failed one",
    )

    status_parser = subparsers.add_parser("status", help="Print deployed addresses")
    status_parser.add_argument("--network", required=True, help="Network name")
    status_parser.add_argument("--state-dir", default=None, help="State directory")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_CONFIG

    load_env_file(Path(args.env_file) if args.env_file else None)
    configure_logging(args.log_level.upper(), json_output=args.log_json)

    try:
        if args.command == "deploy":
            return _deploy(args)
        return _status(args)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except OrchestrationError as e:
        logger.error("run_aborted", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover - exercised via module entrypoint
    raise SystemExit(main())
