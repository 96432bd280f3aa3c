"""
Main CLI for the rebundle tool.

Runs one-shot builds and watch sessions in front of a bundling engine.
"""

from __future__ import annotations

import argparse
import sys

from rebundle.core.utils import configure_debug_logging, log


# =============================================================================
# Version
# =============================================================================

__version__ = "0.1.0"


# =============================================================================
# Argument Parsing
# =============================================================================


def _add_build_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        help="Project root (default: nearest directory with rebundle.yaml or package.json)",
    )
    parser.add_argument(
        "--www",
        help="Web root; the bundle is written to <www>/build (default: <root>/www)",
    )
    parser.add_argument(
        "--config",
        help="Path to the override file (default: <root>/rebundle.yaml)",
    )
    parser.add_argument(
        "--prod",
        action="store_true",
        help="Use the production profile (default: $REBUNDLE_PROFILE or dev)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="rebundle",
        description="Build orchestration in front of a bundling engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  build       Bundle the project once
  watch       Bundle, then rebuild incrementally as sources change

Examples:
  rebundle build                 # Development build
  rebundle build --prod          # Production build
  rebundle watch                 # Watch mode
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug traces from the coordinator and bridge",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # --- build ---
    build_parser = subparsers.add_parser(
        "build",
        help="Bundle the project once",
        description="Preprocess all sources and run a full bundle.",
    )
    _add_build_options(build_parser)

    # --- watch ---
    watch_parser = subparsers.add_parser(
        "watch",
        help="Bundle and rebuild on change",
        description="Run a full bundle, then rebuild incrementally on every change.",
    )
    _add_build_options(watch_parser)

    return parser


# =============================================================================
# Main
# =============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        log.set_color(False)
    configure_debug_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "build":
            from rebundle.commands.watch import cmd_build
            return cmd_build(args)

        elif args.command == "watch":
            from rebundle.commands.watch import cmd_watch
            return cmd_watch(args)

        else:
            log.error(f"Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        log.warning("\nInterrupted")
        return 130
    except Exception as e:
        log.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
