# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command line interface for relies.

    relies [status] [FILE...] [--full] [--descendants] [--json]
    relies add CHILD... --on PARENT...
    relies remove CHILD... --off PARENT...
    relies safe|unsafe FILE...
    relies touch FILE... [--at TIMESTAMP]
    relies untouch FILE...
    relies parents|children|ancestors|descendants FILE
    relies init
    relies prune

With no command, status is assumed.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from colorama import just_fix_windows_console

from relies import __version__
from relies.config import Config, ConfigurationError
from relies.exceptions import MissingStoreError, ReliesError
from relies.logging_setup import setup_logging
from relies.renderer import Renderer
from relies.service import RelianceService
from relies.vcs import GitClient, VersionControl

logger = logging.getLogger(__name__)

COMMANDS = (
    "status",
    "add",
    "remove",
    "safe",
    "unsafe",
    "touch",
    "untouch",
    "parents",
    "children",
    "ancestors",
    "descendants",
    "init",
    "prune",
)

EXIT_OK = 0
EXIT_ERROR = 1


def _timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        Parser with one subcommand per entry of COMMANDS.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--no-color", action="store_true", help="Disable coloured output")
    common.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file. Default: .relies.yml at the repository root",
    )

    parser = argparse.ArgumentParser(
        prog="relies",
        description="Track reliances between files in a git repository and report stale files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    status = sub.add_parser("status", parents=[common], help="Report stale files (default)")
    status.add_argument("files", nargs="*", metavar="FILE")
    status.add_argument("--full", action="store_true", default=None, help="List all ancestors")
    status.add_argument(
        "--descendants",
        action="store_true",
        default=None,
        help="Also list descendants older than each file",
    )
    status.add_argument("--json", action="store_true", help="Print reports as JSON")

    add = sub.add_parser("add", parents=[common], help="Declare reliances")
    add.add_argument("files", nargs="+", metavar="CHILD")
    add.add_argument("--on", nargs="+", required=True, metavar="PARENT", dest="parents")

    remove = sub.add_parser("remove", parents=[common], help="Remove reliances")
    remove.add_argument("files", nargs="+", metavar="CHILD")
    remove.add_argument("--off", nargs="+", required=True, metavar="PARENT", dest="parents")

    for name, help_text in (
        ("safe", "Stop reporting files as sources of staleness"),
        ("unsafe", "Report files as sources of staleness again"),
        ("untouch", "Clear touch overrides"),
    ):
        cmd = sub.add_parser(name, parents=[common], help=help_text)
        cmd.add_argument("files", nargs="+", metavar="FILE")

    touch = sub.add_parser("touch", parents=[common], help="Treat files as modified now")
    touch.add_argument("files", nargs="+", metavar="FILE")
    touch.add_argument(
        "--at", type=_timestamp, default=None, help="ISO-8601 timestamp instead of now"
    )

    for name, help_text in (
        ("parents", "List direct parents of a file"),
        ("children", "List direct children of a file"),
        ("ancestors", "Draw the ancestors of a file"),
        ("descendants", "Draw the descendants of a file"),
    ):
        cmd = sub.add_parser(name, parents=[common], help=help_text)
        cmd.add_argument("file", metavar="FILE")

    sub.add_parser("init", parents=[common], help="Create an empty store")
    sub.add_parser("prune", parents=[common], help="Drop unreferenced placeholder files")
    return parser


# Options shared by every command that take a separate value
_VALUE_OPTIONS = ("--config",)
_TOP_LEVEL_OPTIONS = ("-h", "--help", "--version")


def _command_index(args: Sequence[str]) -> int:
    """Index of the first argument that is not a shared option or its value."""
    i = 0
    while i < len(args) and args[i].startswith("-") and args[i] != "--":
        i += 2 if args[i] in _VALUE_OPTIONS else 1
    return min(i, len(args))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments, defaulting to the status command.

    Shared options may come before the command: `relies -v add a --on b`.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    i = _command_index(args)
    leading, rest = args[:i], args[i:]
    if rest and rest[0] in COMMANDS:
        args = rest[:1] + leading + rest[1:]
    elif not any(option in _TOP_LEVEL_OPTIONS for option in leading):
        args = ["status"] + args
    return build_parser().parse_args(args)


def _run(args: argparse.Namespace, service: RelianceService, out: TextIO, color: bool) -> int:
    renderer = Renderer(service.category, color=color)
    config = service.config

    def emit(lines: List[str]) -> None:
        for line in lines:
            print(line, file=out)

    if args.command == "init":
        created = service.init_store()
        print("OK" if created else f"{service.config.store_filename} already exists", file=out)
    elif args.command == "add":
        service.add_reliances(args.files, args.parents)
        print("OK", file=out)
    elif args.command == "remove":
        service.remove_reliances(args.files, args.parents)
        print("OK", file=out)
    elif args.command in ("safe", "unsafe"):
        service.set_safe(args.files, args.command == "safe")
        print("OK", file=out)
    elif args.command == "touch":
        service.touch(args.files, args.at)
        print("OK", file=out)
    elif args.command == "untouch":
        service.untouch(args.files)
        print("OK", file=out)
    elif args.command == "prune":
        removed = service.prune()
        emit(removed)
        print("OK", file=out)
    elif args.command == "status":
        full = config.full_status if args.full is None else args.full
        descendants = config.show_descendants if args.descendants is None else args.descendants
        reports = service.status(args.files, full=full, descendants=descendants)
        if args.json:
            print(json.dumps([report.to_dict() for report in reports], indent=2), file=out)
        else:
            for report in reports:
                emit(renderer.report(report))
    elif args.command == "parents":
        emit(renderer.listing(service.parents(args.file)))
    elif args.command == "children":
        emit(renderer.listing(service.children(args.file)))
    elif args.command in ("ancestors", "descendants"):
        path = service.resolve_paths([args.file])[0]
        graph = service.session().graph
        neighbours = graph.parents_of if args.command == "ancestors" else graph.children_of
        emit(renderer.tree(path, neighbours))
    return EXIT_OK


def main(
    argv: Optional[Sequence[str]] = None,
    vcs: Optional[VersionControl] = None,
    out: Optional[TextIO] = None,
) -> int:
    """Main entry point.

    Args:
        argv: Arguments without the program name. Default: sys.argv[1:].
        vcs: Version control to use. Default: git in the current directory.
        out: Stream for reports. Default: sys.stdout.

    Returns:
        Process exit code.
    """
    args = parse_args(argv)
    out = out if out is not None else sys.stdout
    setup_logging(log_level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if vcs is None:
            vcs = GitClient()
        if args.config is not None and not args.config.exists():
            raise ConfigurationError(f"Configuration file not found: {args.config}")
        config = Config(config_path=args.config, root=vcs.root)
        level = logging.DEBUG if args.verbose else config.log_level
        if config.log_dir is not None or level != logging.WARNING:
            setup_logging(log_dir=config.log_dir, log_level=level)

        color = config.color and not args.no_color and out.isatty()
        if color:
            just_fix_windows_console()
        service = RelianceService(vcs, config=config)
        return _run(args, service, out, color)
    except MissingStoreError as e:
        # Read commands degrade to "nothing tracked yet"
        logger.debug(f"Missing store: {e.path}")
        print(str(e), file=sys.stderr)
        return EXIT_OK
    except ReliesError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
