"""
Build session state.

A ``BuildContext`` is created once per build session and passed explicitly
to every component: it owns the file cache, the pending rebuild queue, the
current bundle state, and the derived file lists the reconciler writes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from rebundle.build.coordinator import RebuildCoordinator
    from rebundle.build.engine import BundlingEngine
    from rebundle.build.errors import ReconciliationWarning


# =============================================================================
# Enumerations
# =============================================================================


class BuildProfile(str, Enum):
    """Which build flavor to produce."""

    DEV = "dev"
    PROD = "prod"


class BundleState(Enum):
    """Whether the output directory reflects the latest sources."""

    REQUIRES_BUILD = "requires_build"
    SUCCESSFUL_BUILD = "successful_build"


# =============================================================================
# File Cache
# =============================================================================


@dataclass(frozen=True)
class FileCacheEntry:
    """Transformed content for one absolute path."""

    path: Path
    content: str
    timestamp: float = field(default_factory=time.time)


class FileCache:
    """In-memory store of preprocessed files, keyed by absolute path."""

    def __init__(self) -> None:
        self._entries: dict[Path, FileCacheEntry] = {}

    @staticmethod
    def _key(path: Path | str) -> Path:
        return Path(path).resolve()

    def get(self, path: Path | str) -> Optional[FileCacheEntry]:
        return self._entries.get(self._key(path))

    def set(self, path: Path | str, content: str) -> FileCacheEntry:
        key = self._key(path)
        entry = FileCacheEntry(path=key, content=content)
        self._entries[key] = entry
        return entry

    def remove(self, path: Path | str) -> bool:
        return self._entries.pop(self._key(path), None) is not None

    def get_all(self) -> list[FileCacheEntry]:
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self._key(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileCacheEntry]:
        return iter(list(self._entries.values()))


# =============================================================================
# Pending Requests
# =============================================================================


@dataclass
class PendingRequest:
    """One in-flight rebuild trigger and the future its caller awaits."""

    ordinal: int
    future: asyncio.Future
    generation: Optional[int] = None  # Set when this request gets the real outcome

    @property
    def resolved(self) -> bool:
        return self.future.done()


# =============================================================================
# Build Context
# =============================================================================


@dataclass
class BuildContext:
    """State for a single build session."""

    root_dir: Path
    www_dir: Optional[Path] = None
    output_dir: Optional[Path] = None
    profile: BuildProfile = BuildProfile.DEV
    is_watch: bool = False
    write_to_disk: bool = False  # Loader step stores transformed output in the cache
    config_file: Optional[Path] = None

    file_cache: FileCache = field(default_factory=FileCache)
    bundle_state: BundleState = BundleState.REQUIRES_BUILD

    # Rebuild queue, mutated only by the coordinator
    pending: list[PendingRequest] = field(default_factory=list)
    engine: Optional["BundlingEngine"] = None
    coordinator: Optional["RebuildCoordinator"] = None

    # Written by the reconciler after each authoritative success
    module_files: list[Path] = field(default_factory=list)
    bundled_file_paths: list[Path] = field(default_factory=list)
    reconciliation_warnings: list["ReconciliationWarning"] = field(default_factory=list)

    # Bumped for every authoritative outcome; only the newest may be applied
    generation: int = 0

    def __post_init__(self) -> None:
        self.root_dir = Path(self.root_dir).resolve()
        if self.www_dir is None:
            self.www_dir = self.root_dir / "www"
        self.www_dir = Path(self.www_dir).resolve()
        if self.output_dir is None:
            self.output_dir = self.www_dir / "build"
        self.output_dir = Path(self.output_dir).resolve()
        if self.config_file is not None:
            self.config_file = Path(self.config_file)

    @property
    def is_prod(self) -> bool:
        return self.profile is BuildProfile.PROD

    def next_generation(self) -> int:
        """Claim the generation number for a new authoritative outcome."""
        self.generation += 1
        return self.generation

    def is_current(self, generation: Optional[int]) -> bool:
        """True if no outcome newer than ``generation`` has been claimed."""
        return generation is None or generation == self.generation

    @property
    def watch_started(self) -> bool:
        return self.coordinator is not None and self.coordinator.started

    async def close(self) -> None:
        """Tear down the watch session, settling any outstanding requests."""
        if self.coordinator is not None:
            await self.coordinator.stop()
            self.coordinator = None
        self.pending.clear()
        self.is_watch = False
