"""
rebundle - build orchestration in front of a pluggable bundling engine.

Runs full builds and, in watch mode, coordinates bursts of incremental
rebuilds so that only the latest one decides the reported outcome.

Usage:
    python -m rebundle <command> [options]

Commands:
    build       Bundle the project once
    watch       Bundle, then rebuild incrementally as sources change
"""

from .cli import __version__, main

__all__ = ["__version__", "main"]
