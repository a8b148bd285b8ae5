"""
Command-line interface for the domain watcher system.

This module provides the main CLI entry point with commands for:
- tick / run: Run one orchestrator tick, or keep ticking once per minute
- add / remove / list: Manage the watchlist
- check / check-due / ns / ssl: Manual lookups
- settings: Configure, toggle and test notification channels; store the lookup API key
- config: Configuration management

All command output is JSON on stdout; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from . import __version__
from .api_key import ApiKeyService
from .audit_logger import AuditLogger
from .categorizer import DomainCategorizer
from .config import (
    DEFAULT_CONFIG_PATH,
    SystemConfig,
    create_default_config,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
)
from .enums import ChannelKind, DomainStatus
from .exceptions import DomainWatcherError
from .lookup_client import WhoisJsonClient
from .models import ServiceResult
from .notifications import create_channels
from .orchestrator import TickOrchestrator
from .scheduler import MinuteTrigger
from .service import DomainService
from .settings import ChannelSettingsService
from .store import SQLiteDomainStore
from .verification import VerificationEngine


@dataclass
class Runtime:
    """Wired-up components for one CLI invocation."""

    config: SystemConfig
    logger: AuditLogger
    store: SQLiteDomainStore
    provider: WhoisJsonClient
    orchestrator: TickOrchestrator
    service: DomainService
    settings: ChannelSettingsService
    api_key: ApiKeyService

    async def aclose(self) -> None:
        await self.provider.aclose()
        self.store.close()


def build_runtime(config: SystemConfig, logger: Optional[AuditLogger] = None) -> Runtime:
    """
    Construct every component from a configuration.

    Args:
        config: System configuration
        logger: Optional logger (built from config.logging when omitted)

    Returns:
        Runtime holding the wired components
    """
    logger = logger or AuditLogger.from_config(config.logging)
    store = SQLiteDomainStore(config.store.database_path)
    provider = WhoisJsonClient(
        config.lookup,
        retry_config=config.retry,
        simulation_mode=config.simulation_mode,
        logger=logger,
    )
    channels = create_channels(simulation_mode=config.simulation_mode, logger=logger)
    engine = VerificationEngine(
        store, provider, batch_config=config.verification.routine, logger=logger
    )
    categorizer = DomainCategorizer(store, config.verification.expiring_window_days)
    settings = ChannelSettingsService(
        store, channels, demo_mode=config.demo_mode, logger=logger
    )
    orchestrator = TickOrchestrator(
        engine, categorizer, settings, channels, config, logger=logger
    )
    service = DomainService(store, engine, categorizer, provider, config, logger=logger)
    api_key = ApiKeyService(
        store, provider, config.lookup, demo_mode=config.demo_mode, logger=logger
    )
    return Runtime(
        config=config,
        logger=logger,
        store=store,
        provider=provider,
        orchestrator=orchestrator,
        service=service,
        settings=settings,
        api_key=api_key,
    )


def load_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Resolve the configuration for a command.

    Order: JSON file (if --config), then environment / .env, then flags.
    """
    config = None
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None

    config = load_config_from_env(base=config or create_default_config())

    if getattr(args, "dry_run", False):
        config.simulation_mode = True
    if getattr(args, "db", None):
        config.store.database_path = Path(args.db)
    return config


def emit(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def emit_result(result: ServiceResult) -> int:
    emit(result.to_dict())
    return 0 if result.ok else 1


def run_with_runtime(
    args: argparse.Namespace,
    action: Callable[[Runtime], Awaitable[int]],
) -> int:
    """Load config, build the runtime, run an async action, and always clean up."""
    config = load_config(args)
    if config is None:
        return 1

    async def runner() -> int:
        runtime = build_runtime(config)
        try:
            await runtime.api_key.apply_stored_key()
            return await action(runtime)
        finally:
            await runtime.aclose()

    try:
        return asyncio.run(runner())
    except DomainWatcherError as e:
        emit({"error": e.to_dict()})
        return 2


def cmd_tick(args: argparse.Namespace) -> int:
    """Handle the 'tick' command."""
    async def action(runtime: Runtime) -> int:
        result = await runtime.orchestrator.run_tick(force=args.force)
        emit(result.to_dict())
        return 0

    return run_with_runtime(args, action)


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    async def action(runtime: Runtime) -> int:
        async def tick() -> None:
            result = await runtime.orchestrator.run_tick()
            if result.notifications is not None:
                emit(result.to_dict())

        await MinuteTrigger(tick, logger=runtime.logger).run()
        return 0

    try:
        return run_with_runtime(args, action)
    except KeyboardInterrupt:
        return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Handle the 'add' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.add_domain(args.domain))

    return run_with_runtime(args, action)


def cmd_remove(args: argparse.Namespace) -> int:
    """Handle the 'remove' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.remove_domain(args.id))

    return run_with_runtime(args, action)


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the 'list' command."""
    status = DomainStatus(args.status) if args.status else None

    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.list_domains(status))

    return run_with_runtime(args, action)


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.verify_single(args.id))

    return run_with_runtime(args, action)


def cmd_check_due(args: argparse.Namespace) -> int:
    """Handle the 'check-due' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.verify_all_due(args.limit))

    return run_with_runtime(args, action)


def cmd_ns(args: argparse.Namespace) -> int:
    """Handle the 'ns' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.lookup_ns(args.id))

    return run_with_runtime(args, action)


def cmd_ssl(args: argparse.Namespace) -> int:
    """Handle the 'ssl' command."""
    async def action(runtime: Runtime) -> int:
        return emit_result(await runtime.service.lookup_ssl(args.id))

    return run_with_runtime(args, action)


def cmd_settings(args: argparse.Namespace) -> int:
    """Handle the 'settings' command."""
    async def action(runtime: Runtime) -> int:
        settings = runtime.settings
        if args.action == "show":
            loaded = await settings.load(ChannelKind(args.kind))
            emit(runtime.logger.mask_sensitive_data(loaded.to_dict()))
            return 0
        if args.action == "slack":
            return emit_result(await settings.save_slack(
                args.webhook_url, args.time, send_test_message=args.test,
            ))
        if args.action == "resend":
            return emit_result(await settings.save_resend(
                args.api_key, args.from_email, args.to_email, args.time,
                send_test_message=args.test,
            ))
        if args.action in ("enable", "disable"):
            return emit_result(
                await settings.set_enabled(ChannelKind(args.kind), args.action == "enable")
            )
        if args.action == "test":
            return emit_result(await settings.send_test(ChannelKind(args.kind)))
        if args.action == "api-key":
            return emit_result(await runtime.api_key.save(args.key))
        if args.action == "api-key-show":
            return emit_result(await runtime.api_key.show())
        return 1

    return run_with_runtime(args, action)


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Database: {config.store.database_path}")
        print(f"  Timezone: {config.timezone}")
        print(f"  Lookup API key: {'set' if config.lookup.api_key else 'not set'}")
        print(f"  Routine batch: {config.verification.routine.batch_size} "
              f"every {config.verification.routine.delay_seconds}s")
        print(f"  Demo mode: {config.demo_mode}")
        print(f"  Simulation mode: {config.simulation_mode}")
        print(f"  Log level: {config.logging.level}")
        return 0

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-watcher",
        description="Watch domains for availability and expiry, and report on a schedule",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", help="Path to configuration file")
    common.add_argument("--db", help="Path to the watchlist database")
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no real network requests",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    tick_parser = subparsers.add_parser("tick", parents=[common], help="Run one scheduler tick")
    tick_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Dispatch all enabled channels regardless of their time",
    )
    tick_parser.set_defaults(func=cmd_tick)

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Tick once per minute until interrupted",
    )
    run_parser.set_defaults(func=cmd_run)

    add_parser = subparsers.add_parser("add", parents=[common], help="Add a domain")
    add_parser.add_argument("domain", help="Domain to watch (e.g., example.com)")
    add_parser.set_defaults(func=cmd_add)

    remove_parser = subparsers.add_parser("remove", parents=[common], help="Remove a domain")
    remove_parser.add_argument("id", help="Domain id")
    remove_parser.set_defaults(func=cmd_remove)

    list_parser = subparsers.add_parser("list", parents=[common], help="List watched domains")
    list_parser.add_argument(
        "--status", "-s",
        choices=[status.value for status in DomainStatus],
        help="Only show domains with this status",
    )
    list_parser.set_defaults(func=cmd_list)

    check_parser = subparsers.add_parser("check", parents=[common], help="Re-check one domain")
    check_parser.add_argument("id", help="Domain id")
    check_parser.set_defaults(func=cmd_check)

    check_due_parser = subparsers.add_parser(
        "check-due", parents=[common], help="Re-check domains that need verification",
    )
    check_due_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=None,
        help="Maximum number of domains to check (default from config)",
    )
    check_due_parser.set_defaults(func=cmd_check_due)

    ns_parser = subparsers.add_parser("ns", parents=[common], help="Nameserver lookup")
    ns_parser.add_argument("id", help="Domain id")
    ns_parser.set_defaults(func=cmd_ns)

    ssl_parser = subparsers.add_parser("ssl", parents=[common], help="SSL certificate lookup")
    ssl_parser.add_argument("id", help="Domain id")
    ssl_parser.set_defaults(func=cmd_ssl)

    settings_parser = subparsers.add_parser("settings", help="Notification channel settings")
    settings_sub = settings_parser.add_subparsers(dest="action", required=True)
    kinds = [kind.value for kind in ChannelKind]

    for name, help_text in (
        ("show", "Show a channel's settings"),
        ("enable", "Enable a channel"),
        ("disable", "Disable a channel"),
        ("test", "Send a test message"),
    ):
        sub = settings_sub.add_parser(name, parents=[common], help=help_text)
        sub.add_argument("kind", choices=kinds)

    slack_parser = settings_sub.add_parser("slack", parents=[common], help="Configure Slack")
    slack_parser.add_argument("--webhook-url", required=True)
    slack_parser.add_argument("--time", required=True, help="Local send time, HH:MM")
    slack_parser.add_argument("--test", action="store_true", help="Send a test message")

    resend_parser = settings_sub.add_parser("resend", parents=[common], help="Configure Resend")
    resend_parser.add_argument("--api-key", required=True)
    resend_parser.add_argument("--from", dest="from_email", required=True)
    resend_parser.add_argument("--to", dest="to_email", required=True)
    resend_parser.add_argument("--time", required=True, help="Local send time, HH:MM")
    resend_parser.add_argument("--test", action="store_true", help="Send a test message")

    api_key_parser = settings_sub.add_parser(
        "api-key", parents=[common], help="Test and store the lookup provider API key",
    )
    api_key_parser.add_argument("--key", required=True, help="Lookup provider API key")
    settings_sub.add_parser(
        "api-key-show", parents=[common], help="Show the stored lookup API key, masked",
    )
    settings_parser.set_defaults(func=cmd_settings)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument("action", choices=["show", "init"], help="Configuration action")
    config_parser.add_argument("--path", "-p", help="Path to configuration file")
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
