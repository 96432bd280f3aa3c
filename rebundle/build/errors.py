"""
Error types for build orchestration.

Only ``BuildFailure`` is meant to reach the user. ``SupersededRequest`` marks
a rebuild outcome that lost the race to a newer trigger and is dropped by
callers; ``ReconciliationWarning`` records a stale file that could not be
removed and is only logged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class RebundleError(Exception):
    """Base class for all rebundle errors."""


class ConfigError(RebundleError):
    """The user configuration file or an engine reference is invalid."""


class BuildFailure(RebundleError):
    """The most recent build attempt failed."""

    def __init__(self, message: str = "Build failed", errors: Sequence[str] = ()):
        self.errors = list(errors)
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class SupersededRequest(RebundleError):
    """A rebuild finished for a request that is no longer the latest."""

    def __init__(self, ordinal: Optional[int] = None):
        self.ordinal = ordinal
        suffix = f" #{ordinal}" if ordinal is not None else ""
        super().__init__(f"Rebuild request{suffix} superseded by a newer request")


class MissingCacheEntry(RebundleError):
    """The virtual file bridge has no transformed content for a path."""

    def __init__(self, path: Path | str, cache_key: Path | str):
        self.path = str(path)
        self.cache_key = str(cache_key)
        super().__init__(
            f"No cached content for {self.path} (looked up {self.cache_key}); "
            f"the preprocessing step must run before the bundle"
        )


class ReconciliationWarning(RebundleError):
    """A stale output file could not be deleted."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Could not remove stale output {self.path}: {reason}")
