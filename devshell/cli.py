"""
devshell command line interface.

Usage:
    devshell self-upgrade                  # from the rolling release
    devshell self-upgrade master           # from the master branch
    devshell self-upgrade local ~/src/devshell
    devshell info                          # version and settings as JSON
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from devshell import __version__
from devshell.config import ConfigError, get_settings
from devshell.ops import ExitError
from devshell.ops import upgrade
from devshell.ops.upgrade import UpgradeSource


def source_from_args(args: argparse.Namespace):
    """Build the UpgradeSource selected on the command line."""
    if args.source == "master":
        return UpgradeSource.master()
    if args.source == "local":
        return UpgradeSource.local(Path(args.path).absolute())
    return UpgradeSource.rolling_release()


def cmd_self_upgrade(args):
    """Upgrade devshell to the selected source."""
    settings = get_settings()
    try:
        message = upgrade.main(source_from_args(args), settings=settings)
    except ExitError as e:
        print(e.message, file=sys.stderr)
        return e.exit_code

    if message:
        print(message)
    return 0


def cmd_info(args):
    """Show version and resolved settings."""
    info = {
        "version": __version__,
        "settings": get_settings().to_dict(),
    }
    print(json.dumps(info, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devshell",
        description="Developer environment tooling",
    )
    parser.add_argument("--version", action="version", version=f"devshell {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # self-upgrade command
    upgrade_parser = subparsers.add_parser(
        "self-upgrade",
        help="Upgrade devshell using nix-env",
    )
    sources = upgrade_parser.add_subparsers(dest="source", help="Upgrade source (default: rolling-release)")
    sources.add_parser("rolling-release", help="Latest rolling release")
    sources.add_parser("master", help="The master branch")
    local_parser = sources.add_parser("local", help="A local checkout")
    local_parser.add_argument("path", help="Path to the devshell source directory")
    upgrade_parser.set_defaults(func=cmd_self_upgrade)

    # info command
    info_parser = subparsers.add_parser("info", help="Show version and settings")
    info_parser.set_defaults(func=cmd_info)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
