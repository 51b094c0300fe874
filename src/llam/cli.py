#!/usr/bin/env python3
"""Lua language server addon manager CLI.

Installs language server addons into ``<project>/.addons`` and records them
in the project's ``.luarc.json``.

Usage:
    llam [--path DIR] [-v] add <addons...>
    llam remove (<addons...> | --all)
    llam update (<addons...> | --all)
    llam clean
    llam config diagnostic {disable,enable,add-global,remove-global,severity} ...
    llam config doc {package,private,protected} <patterns...>

Addon syntax:
    [<name>=]<source>[@<branch>][#<checksum>]

Environment:
    LLAM_LOG_LEVEL      Console log level (default: INFO)
    LLAM_CONFIG         Settings file (default: .llam.yaml, ~/.config/llam/config.yaml)
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .addon import Addon, SomeOrAll
from .errors import LlamError
from .manager import AddonManager, OperationResult
from .manifest import editor
from .manifest.diagnostics import parse_diagnostic, parse_severity
from .settings import load_settings
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _addon_arg(value: str) -> Addon:
    try:
        return Addon.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _diagnostic_arg(value: str) -> str:
    try:
        return parse_diagnostic(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _severity_arg(value: str) -> str:
    if "=" not in value:
        raise argparse.ArgumentTypeError("invalid set value, expected [key]=[value]")
    key, severity = value.split("=", 1)
    try:
        return f"{parse_diagnostic(key)}={parse_severity(severity)}"
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _add_list_or_all(subparsers, name: str, help_text: str) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(name, help=help_text)
    parser.add_argument("addons", nargs="*", type=_addon_arg, help="Addons to select")
    parser.add_argument("--all", action="store_true", help="Select every addon in the manifest")
    return parser


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llam",
        description="Install and manage Lua language server addons",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Add LuaCATS definitions for LÖVE and busted
    llam add love2d busted

    # Add from a URL, tracking a branch
    llam add https://github.com/org/lua-defs.git@dev

    # Pin an addon to a commit
    llam add love2d#5d4d3a1

    # Update everything
    llam update --all
""",
    )
    parser.add_argument("--path", type=Path, help="Root path of the project (default: cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    add = subparsers.add_parser("add", help="Add one or more addons")
    add.add_argument("addons", nargs="+", type=_addon_arg, help="Addons to add")

    _add_list_or_all(subparsers, "remove", "Remove one or more addons")
    _add_list_or_all(subparsers, "update", "Update one, many, or all addons")
    subparsers.add_parser("clean", help="Remove addons that are not in the manifest")

    config = subparsers.add_parser("config", help="Update .luarc.json settings")
    config_sub = config.add_subparsers(dest="section", required=True)

    diagnostic = config_sub.add_parser("diagnostic", help="Change a diagnostic setting")
    diagnostic_sub = diagnostic.add_subparsers(dest="setting", required=True)
    diagnostic_sub.add_parser("disable", help="Disable diagnostics").add_argument(
        "values", nargs="+", type=_diagnostic_arg
    )
    diagnostic_sub.add_parser("enable", help="Re-enable disabled diagnostics").add_argument(
        "values", nargs="+", type=_diagnostic_arg
    )
    diagnostic_sub.add_parser("add-global", help="Declare global variables").add_argument(
        "values", nargs="+"
    )
    diagnostic_sub.add_parser("remove-global", help="Remove declared globals").add_argument(
        "values", nargs="+"
    )
    diagnostic_sub.add_parser("severity", help="Set diagnostic severities (name=severity)").add_argument(
        "values", nargs="+", type=_severity_arg
    )

    doc = config_sub.add_parser("doc", help="Set table key visibility patterns")
    doc_sub = doc.add_subparsers(dest="setting", required=True)
    for kind in editor.DOC_KEYS:
        doc_sub.add_parser(kind, help=f"Mark matching table keys as {kind}").add_argument(
            "values", nargs="+"
        )

    return parser


def _selection(parser: argparse.ArgumentParser, args: argparse.Namespace) -> SomeOrAll:
    if args.all and args.addons:
        parser.error("addons and --all are mutually exclusive")
    if not args.all and not args.addons:
        parser.error(f"{args.command}: give one or more addons, or --all")
    return SomeOrAll.all() if args.all else SomeOrAll.some(args.addons)


def _run_config(manager: AddonManager, args: argparse.Namespace) -> int:
    if args.section == "doc":
        added = manager.configure(lambda m: editor.add_doc_patterns(m, args.setting, args.values))
        logger.info(f"Added {added} doc {args.setting} pattern(s)")
        return 0

    edits = {
        "disable": editor.disable_diagnostics,
        "enable": editor.enable_diagnostics,
        "add-global": editor.add_globals,
        "remove-global": editor.remove_globals,
        "severity": editor.set_severities,
    }
    edit = edits[args.setting]
    manager.configure(lambda m: edit(m, args.values))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the llam CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else None)

    path = args.path or Path.cwd()
    if not path.exists():
        logger.error(f"The project path does not exist: {path}")
        return 1

    try:
        settings = load_settings(path)
        manager = AddonManager(path, settings=settings)

        result: Optional[OperationResult] = None
        if args.command == "add":
            result = manager.add(args.addons)
        elif args.command == "remove":
            result = manager.remove(_selection(parser, args))
        elif args.command == "update":
            result = manager.update(_selection(parser, args))
        elif args.command == "clean":
            result = manager.clean()
        elif args.command == "config":
            return _run_config(manager, args)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except LlamError as e:
        logger.error(str(e))
        return 1

    if result is None:
        return 0
    for failure in result.failures:
        logger.debug(f"{failure.addon}: {failure.phase} failed: {failure.error}")
    if result.interrupted:
        logger.warning("Interrupted by user")
        return 130
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
