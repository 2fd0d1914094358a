"""
Command-line interface for appsync-deployer.

Usage (examples):
  - Deploy and record state:
      appsync-deployer deploy --config appsync.yml --state .appsync/state.json

  - Show what a deploy would do (no mutation, no state write):
      appsync-deployer plan --config appsync.yml

  - Delete the API and its synthesized role:
      appsync-deployer remove --state .appsync/state.json
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Iterable, List, Optional

from .core.appsync_client import Clients, get_clients
from .core.config import AppConfig, load_config, load_desired
from .core.diff_engine import PlannedAction, summarize
from .core.errors import AppSyncDeployerError, ConfigurationError
from .core.logging_setup import build_logger
from .core.orchestrator import Orchestrator, SyncOptions
from .core.schema_monitor import MonitorConfig
from .core.state_store import load_state, save_state

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def _summarize_counts(counts: Dict[str, int]) -> str:
    return " | ".join(f"{k.upper()}={v}" for k, v in counts.items())


def _format_action(action: PlannedAction) -> str:
    label = ".".join(str(k) for k in action.key)
    return f"{action.mode.value:<7} {action.kind:<11} {label}  ({action.reason})"


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="appsync-deployer", description="Reconcile an AWS AppSync GraphQL API")
    sub = p.add_subparsers(dest="cmd", required=True)

    for cmd, help_text in (
        ("deploy", "Converge the API to the desired configuration"),
        ("plan", "Show planned actions without mutating anything"),
        ("remove", "Delete the API and the synthesized service role"),
    ):
        a = sub.add_parser(cmd, help=help_text)
        a.add_argument("--config", default=None, help="Desired configuration YAML (default: paths.desired_file)")
        a.add_argument("--state", default=None, help="State file (default: paths.state_file)")
        a.add_argument("--src", default=None, help="Root directory for schema and template files")
        a.add_argument("--region", default=None, help="AWS region")
        a.add_argument("--profile", default=None, help="AWS named profile")
        a.add_argument("--logs-dir", default=None, help="Logs base directory")
        a.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
        a.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")
    return p


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "app": {"dry_run": True if args.cmd == "plan" else None},
        "aws": {"region": args.region, "profile": args.profile},
        "paths": {"src": args.src, "state_file": args.state, "desired_file": args.config},
        "logging": {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        },
    }


def _orchestrator(cfg: AppConfig, clients: Clients, logger: Any) -> Orchestrator:
    options = SyncOptions(
        src=cfg.paths.src,
        concurrency=cfg.app.concurrency,
        monitor=MonitorConfig(
            interval_sec=cfg.schema.poll_interval_sec,
            timeout_sec=cfg.schema.timeout_sec,
            max_attempts=cfg.schema.max_attempts,
        ),
        role_settle_sec=cfg.role.settle_sec,
    )
    return Orchestrator(clients, options, logger=logger)


def _run(args: argparse.Namespace, cfg: AppConfig, clients_factory: Any) -> int:
    prior = load_state(cfg.paths.state_file)
    region = cfg.aws.region

    if args.cmd == "remove":
        region = args.region or prior.region or region
        logger = build_logger(
            run_id=cfg.run_id,
            action="remove",
            base_dir=cfg.logging.base_dir,
            console_level=cfg.logging.console_level,
            file_level=cfg.logging.file_level,
            extra={"api": prior.api_id, "region": region},
        )
        if not prior.api_id:
            logger.info("Nothing to remove: no API recorded in %s", cfg.paths.state_file)
            return EXIT_OK
        orchestrator = _orchestrator(cfg, clients_factory(region, cfg.aws.profile, logger=logger), logger)
        save_state(cfg.paths.state_file, orchestrator.teardown(prior))
        logger.info("Removed graphql API %s", prior.api_id)
        return EXIT_OK

    explicit = {"region": args.region} if args.region else None
    desired = load_desired(cfg.paths.desired_file, prior, default_region=region, explicit=explicit)
    logger = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"api": desired.name, "region": desired.region},
    )
    logger.info("Starting appsync-deployer %s (dry_run=%s)", args.cmd, cfg.app.dry_run)
    orchestrator = _orchestrator(cfg, clients_factory(desired.region, cfg.aws.profile, logger=logger), logger)

    if args.cmd == "plan":
        actions: List[PlannedAction] = orchestrator.plan(desired, prior)
        for action in actions:
            print(_format_action(action))
        print(_summarize_counts(summarize(actions)))
        return EXIT_OK

    result = orchestrator.synchronize(desired, prior)
    save_state(cfg.paths.state_file, result.state)
    logger.info("Deploy summary: %s", _summarize_counts(summarize(result.actions)))
    print(json.dumps(result.output, indent=2, sort_keys=True))
    return EXIT_OK


def main(argv: Optional[Iterable[str]] = None, *, clients_factory: Any = get_clients) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        cfg = load_config(_overrides(args))
        return _run(args, cfg, clients_factory)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except AppSyncDeployerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
