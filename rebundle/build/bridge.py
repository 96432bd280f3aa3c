"""
Virtual file bridge.

Reroutes the engine's module loads to the transformed content held in the
build context's file cache. Modules under the vendor directory are read from
disk unmodified. The bridge is also the engine's completion hook: every
build end is forwarded to the rebuild coordinator, so full and incremental
builds report through the same channel.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from rebundle.build.context import BuildContext
from rebundle.build.engine import EngineResult, LoadResult, OutputManifest
from rebundle.build.errors import BuildFailure, MissingCacheEntry
from rebundle.core.utils import DEFAULT_VENDOR_DIR, change_extension

_log = logging.getLogger(__name__)

CANONICAL_EXTENSION = ".js"
SCRIPT_LOADER = "js"


class NotificationSink(Protocol):
    """Receiver of build-end notifications (the rebuild coordinator)."""

    def notify_success(self, manifest: OutputManifest) -> None: ...

    def notify_failure(self, error: BaseException) -> None: ...


class VirtualFileBridge:
    """Serves cached, preprocessed modules to the bundling engine."""

    def __init__(
        self,
        context: BuildContext,
        vendor_dir: str = DEFAULT_VENDOR_DIR,
        source_extensions: Iterable[str] = (".ts", ".tsx"),
    ):
        self.context = context
        self.vendor_dir = vendor_dir
        self.source_extensions = frozenset(source_extensions)
        self._sink: Optional[NotificationSink] = None
        self._load_errors: list[MissingCacheEntry] = []

    # -------------------------------------------------------------------------
    # Notification wiring
    # -------------------------------------------------------------------------

    def attach(self, sink: NotificationSink) -> None:
        self._sink = sink

    def detach(self) -> None:
        self._sink = None

    # -------------------------------------------------------------------------
    # Load interception
    # -------------------------------------------------------------------------

    def is_vendor(self, path: Path | str) -> bool:
        return self.vendor_dir in Path(path).parts

    def matches(self, path: Path | str) -> bool:
        """True if the engine must load ``path`` through the cache."""
        return not self.is_vendor(path)

    def cache_key(self, path: Path | str) -> Path:
        """Map a source path to the key its compiled output is cached under."""
        path = Path(path)
        if path.suffix in self.source_extensions:
            return change_extension(path, CANONICAL_EXTENSION)
        return path

    async def load(self, path: Path | str) -> LoadResult:
        """Return the content the engine should compile for ``path``.

        Raises:
            MissingCacheEntry: ``path`` is not a vendor module and the
                preprocessing step never cached its output.
        """
        if self.is_vendor(path):
            contents = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            return LoadResult(contents=contents)

        key = self.cache_key(path)
        entry = self.context.file_cache.get(key)
        if entry is None:
            error = MissingCacheEntry(path, key)
            self._load_errors.append(error)
            raise error

        _log.debug("bridge: %s -> %s (%d chars)", path, key, len(entry.content))
        return LoadResult(contents=entry.content, loader=SCRIPT_LOADER)

    # -------------------------------------------------------------------------
    # Completion hook
    # -------------------------------------------------------------------------

    def on_end(self, result: EngineResult) -> None:
        """Called by the engine once per finished build."""
        load_errors, self._load_errors = self._load_errors, []

        if self._sink is None:
            _log.debug("bridge: build ended with no coordinator attached")
            return

        if result.ok:
            self._sink.notify_success(result.manifest)
            return

        errors = list(result.errors) or ["engine reported no output manifest"]
        failure = BuildFailure("Bundle failed", errors)
        if load_errors:
            failure.__cause__ = load_errors[0]
        self._sink.notify_failure(failure)
