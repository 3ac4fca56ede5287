"""
devsetup - developer machine bootstrap and maintenance.

Usage:
    devsetup install [packages|plugins|dotfiles ...]
    devsetup update  [packages|plugins|dotfiles|maintenance ...]
    devsetup remove  [packages|plugins|dotfiles ...]

Without a scope every applicable scope runs. Dotfiles are part of "every
scope" only when a dotfiles repository is configured.

Exit codes: 0 when the run completed (individual item failures are
reported as warnings), 1 on a fatal precondition or configuration error,
130 when interrupted.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from . import __version__
from . import maintenance, tasks
from .config import Config, load_config, validate_config
from .environment import Platform, detect_platform
from .logging_config import setup_logging
from .maintenance import TaskResult
from .reconcile import PreconditionError, Report
from .render import print_summary, render_json, render_report, render_task


SCOPES = {
    "install": ("packages", "plugins", "dotfiles"),
    "update": ("packages", "plugins", "dotfiles", "maintenance"),
    "remove": ("dotfiles", "plugins", "packages"),
}

INSTALLERS = {
    "packages": tasks.install_packages,
    "plugins": tasks.install_plugins,
    "dotfiles": tasks.install_dotfiles,
}

UPDATERS = {
    "plugins": tasks.update_plugins,
    "dotfiles": tasks.update_dotfiles,
}

REMOVERS = {
    "dotfiles": tasks.remove_dotfiles,
    "plugins": tasks.remove_plugins,
    "packages": tasks.remove_packages,
}


def resolve_scopes(verb: str, requested: Sequence[str], config: Config) -> list[str]:
    """
    Order the requested scopes for a verb, or pick every applicable scope.

    Args:
        verb: 'install', 'update' or 'remove'
        requested: Scopes named on the command line (may be empty)
        config: Configuration object

    Returns:
        Scopes in execution order
    """
    available = SCOPES[verb]
    if requested:
        return [scope for scope in available if scope in requested]
    return [
        scope for scope in available
        if scope != "dotfiles" or config.dotfiles.repository
    ]


def cmd_install(args: argparse.Namespace, config: Config, platform: Platform) -> tuple[list[Report], list[TaskResult]]:
    reports: list[Report] = []
    for scope in resolve_scopes("install", args.scopes, config):
        reports.extend(INSTALLERS[scope](config, platform, args.dry_run, args.verbose))
    return reports, []


def cmd_update(args: argparse.Namespace, config: Config, platform: Platform) -> tuple[list[Report], list[TaskResult]]:
    reports: list[Report] = []
    task_results: list[TaskResult] = []
    scopes = resolve_scopes("update", args.scopes, config)

    if "packages" in scopes:
        task_results.extend(maintenance.update_system_packages(platform, args.dry_run, args.verbose))
    for scope in scopes:
        if scope in UPDATERS:
            reports.extend(UPDATERS[scope](config, platform, args.dry_run, args.verbose))
    if "maintenance" in scopes:
        task_results.extend(maintenance.run_maintenance(config, platform, dry_run=args.dry_run, verbose=args.verbose))
    # Cleanup runs last, after every upgrade has finished.
    if "packages" in scopes:
        task_results.append(maintenance.clean_system_packages(platform, args.dry_run, args.verbose))
    return reports, task_results


def cmd_remove(args: argparse.Namespace, config: Config, platform: Platform) -> tuple[list[Report], list[TaskResult]]:
    reports: list[Report] = []
    for scope in resolve_scopes("remove", args.scopes, config):
        reports.extend(REMOVERS[scope](config, platform, args.dry_run, args.verbose))
    return reports, []


COMMANDS = {
    "install": cmd_install,
    "update": cmd_update,
    "remove": cmd_remove,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devsetup",
        description="Bootstrap and maintain a developer machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config", "-c",
        help="Path to a config file (takes priority over the default locations)",
    )
    parser.add_argument(
        "--platform",
        choices=("auto", "macos", "linux"),
        default=None,
        help="Override platform detection",
    )
    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show what would change without changing anything",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print reports as JSON",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only show warnings and errors",
    )
    parser.add_argument(
        "--log-file",
        help="Also write a debug log to this file",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    for verb, scopes in SCOPES.items():
        sub = subparsers.add_parser(verb, help=f"{verb.capitalize()} {', '.join(scopes)}")
        sub.add_argument(
            "scopes",
            nargs="*",
            metavar="SCOPE",
            help=f"One or more of: {', '.join(scopes)} (default: all)",
        )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    unknown = [scope for scope in args.scopes if scope not in SCOPES[args.command]]
    if unknown:
        parser.error(
            f"invalid scope for {args.command}: {', '.join(unknown)} "
            f"(choose from {', '.join(SCOPES[args.command])})"
        )

    logger = setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    try:
        config = load_config(args.config, verbose=args.verbose)
        for warning in validate_config(config):
            logger.warning(f"Config: {warning}")
        platform = detect_platform(args.platform or config.platform, verbose=args.verbose)
    except ValueError as e:
        logger.error(str(e))
        return 1

    logger.debug(f"Platform: {platform}")

    try:
        reports, task_results = COMMANDS[args.command](args, config, platform)
    except PreconditionError as e:
        logger.error(e.message)
        if e.remediation:
            logger.error(f"Fix: {e.remediation}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.json:
        render_json(reports, task_results)
    else:
        for report in reports:
            render_report(report)
        for task_result in task_results:
            render_task(task_result)
        print_summary(reports, task_results)

    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
