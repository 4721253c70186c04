"""Command-line interface for gopin."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import GopinConfig
from .errors import UnknownTarget
from .get import GetConfig, get, validate_flags
from .helpers import gen_helpers
from .index import format_table, list_pinned_tools, sort_entries, to_json
from .runner import Runner, UpdatePolicy
from .utils import setup_logging

# Initialize rich console
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def _mod_dir(args: argparse.Namespace, config: GopinConfig) -> tuple[Path, str]:
    if args.moddir:
        return Path(args.moddir).expanduser(), args.moddir
    return config.mod_dir, config.moddir


def get_command(args: argparse.Namespace, config: GopinConfig) -> None:
    """Pin, update or remove a tool and regenerate the helper files."""
    # Flag errors must not depend on a working toolchain.
    validate_flags(args.name, args.rename)

    mod_dir, rel_mod_dir = _mod_dir(args, config)
    runner = Runner.new(
        go_cmd=args.go or config.go,
        insecure=args.insecure or config.insecure,
        verbose=args.verbose or config.verbose,
        timeout=config.timeout,
    )
    get_config = GetConfig(
        runner=runner,
        mod_dir=mod_dir,
        rel_mod_dir=rel_mod_dir,
        name=args.name,
        rename=args.rename,
        link=args.link or config.link,
        update=UpdatePolicy(args.update),
    )
    get(get_config, args.target)

    entries = sort_entries(list_pinned_tools(mod_dir, remove_malformed=True))
    gen_helpers(mod_dir, rel_mod_dir, __version__, entries)


def list_command(args: argparse.Namespace, config: GopinConfig) -> None:
    """Print pinned tools as a table or as JSON."""
    mod_dir, _ = _mod_dir(args, config)
    entries = list_pinned_tools(mod_dir)
    if args.target and all(e.name != args.target for e in entries):
        msg = f"tool {args.target} is not pinned in {mod_dir}"
        raise UnknownTarget(msg)

    output = to_json(entries, args.target) if args.json else format_table(entries, args.target)
    console.print(output, markup=False, highlight=False, soft_wrap=True)


def version_command(_args: argparse.Namespace, _config: GopinConfig) -> None:
    console.print(f"[yellow]gopin[/] [bold]v{__version__}[/]")


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="gopin - Pin versions of Go tools in your project",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        help="Path to configuration file (default: .gopin.yaml if present)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # get command
    get_parser = subparsers.add_parser(
        "get",
        help="Add, update or remove a pinned tool",
        description=(
            "Pin a tool given as <package>[@version[,version...]|@none] or refer to an "
            "installed tool by name. Without a target all pinned tools are reinstalled."
        ),
    )
    get_parser.add_argument(
        "target",
        nargs="?",
        default="",
        help="Package path or tool name, optionally with @version, @v1,v2 or @none",
    )
    name_flags = get_parser.add_argument_group("naming")
    name_flags.add_argument(
        "-n",
        "--name",
        default="",
        help="Name for the pinned tool (also clones an installed tool under a new name)",
    )
    name_flags.add_argument(
        "-r",
        "--rename",
        default="",
        help="Rename an installed tool to this name",
    )
    get_parser.add_argument("--go", default="", help="Path to the go command")
    get_parser.add_argument(
        "--insecure",
        action="store_true",
        help="Use -insecure flag when using 'go get'",
    )
    get_parser.add_argument(
        "-l",
        "--link",
        action="store_true",
        help="Also create a non-versioned symlink to the installed binary",
    )
    get_parser.add_argument(
        "-u",
        "--update",
        choices=[p.value for p in UpdatePolicy],
        default=UpdatePolicy.NONE.value,
        help="Update policy for dependencies of the resolved tool",
    )
    get_parser.add_argument("--moddir", default="", help="Directory with pinned module files")
    get_parser.set_defaults(func=get_command)

    # list command
    list_parser = subparsers.add_parser("list", help="List pinned tools")
    list_parser.add_argument("target", nargs="?", default="", help="Only show this tool")
    list_parser.add_argument("--json", action="store_true", help="Print as JSON")
    list_parser.add_argument("--moddir", default="", help="Directory with pinned module files")
    list_parser.set_defaults(func=list_command)

    # version command
    version_parser = subparsers.add_parser("version", help="Print version information")
    version_parser.set_defaults(func=version_command)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main function to parse arguments and execute commands."""
    parser = create_parser()
    args = parser.parse_args(argv)

    config = GopinConfig.load_from_file(args.config_file)
    verbose = args.verbose or config.verbose
    setup_logging(verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args, config)
    except Exception as e:  # noqa: BLE001
        err_console.print(f"❌ [bold red]Error: {args.command} command failed: {escape(str(e))}[/bold red]")
        if verbose:
            err_console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
