"""
Build and watch commands for rebundle.

``build`` bundles once. ``watch`` bundles, then monitors the sources that fed
the bundle and pushes every debounced batch of changes through the
preprocessor and an incremental rebuild.
"""

from __future__ import annotations

import argparse
import asyncio
import threading
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from rebundle.build.config import BundleConfig, get_config_path, resolve_config, resolve_profile
from rebundle.build.context import BuildContext
from rebundle.build.errors import BuildFailure, ConfigError, SupersededRequest
from rebundle.build.loaders import (
    Preprocessor,
    discover_sources,
    load_preprocessor,
    run_preprocessor,
)
from rebundle.build.orchestrator import run_full_build, run_incremental_build
from rebundle.core.utils import DEFAULT_VENDOR_DIR, get_project_root, is_within, log

# =============================================================================
# Constants
# =============================================================================

DEBOUNCE_SECONDS = 0.3


# =============================================================================
# Change Classification
# =============================================================================


class ChangeAction(Enum):
    """What a file change requires."""
    REBUNDLE = auto()        # Source changed -> preprocess + incremental rebuild
    RELOAD_CONFIG = auto()   # rebundle.yaml changed -> restart the session


class ChangeClassifier:
    """Classifies file change events into build actions."""

    def __init__(self, context: BuildContext, config: BundleConfig):
        self.context = context
        self.config = config
        self.config_path = get_config_path(context).resolve()
        self._suffixes = set(config.source_extensions) | {".js"}

    def classify(self, path: Path) -> Optional[ChangeAction]:
        """Classify a changed file. Returns None if the change should be ignored."""
        path = path.resolve()

        if path == self.config_path:
            return ChangeAction.RELOAD_CONFIG

        if any(part.startswith(".") for part in path.parts):
            return None
        if "__pycache__" in path.parts or self.config.vendor_dir in path.parts:
            return None
        if is_within(path, self.context.output_dir):
            return None

        if path in self.context.module_files:
            return ChangeAction.REBUNDLE
        if path.suffix in self._suffixes and is_within(path, self.context.root_dir / "src"):
            return ChangeAction.REBUNDLE
        return None


# =============================================================================
# Debouncer
# =============================================================================


class Debouncer:
    """Collapses a burst of change events into one callback.

    The callback fires once ``delay`` seconds after the last event, with every
    distinct path seen in the burst. A config change anywhere in the burst
    turns the whole batch into a config reload.
    """

    def __init__(self, delay: float, callback: Callable[[ChangeAction, list[Path]], None]):
        self.delay = delay
        self.callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._reload = False
        self._paths: dict[Path, None] = {}

    def trigger(self, action: ChangeAction, path: Path) -> None:
        """Register a change event and restart the quiet period."""
        with self._lock:
            self._reload = self._reload or action is ChangeAction.RELOAD_CONFIG
            self._paths[path] = None
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            if not self._paths:
                return
            action = ChangeAction.RELOAD_CONFIG if self._reload else ChangeAction.REBUNDLE
            paths = list(self._paths)
            self._reset()
        self.callback(action, paths)

    def _reset(self) -> None:
        self._timer = None
        self._reload = False
        self._paths.clear()

    def cancel(self) -> None:
        """Drop the pending batch without firing."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._reset()


# =============================================================================
# Rebundler
# =============================================================================


class Rebundler:
    """Runs builds for the watch loop on the asyncio event loop."""

    def __init__(self, context: BuildContext, config: BundleConfig, preprocessor: Preprocessor):
        self.context = context
        self.config = config
        self.preprocessor = preprocessor
        self._build_count = 0
        self._superseded_count = 0

    @property
    def build_count(self) -> int:
        return self._build_count

    @property
    def superseded_count(self) -> int:
        return self._superseded_count

    async def full_build(self) -> bool:
        """Preprocess every source and run a full build. Returns success."""
        sources = discover_sources(self.context, self.config)
        await run_preprocessor(self.preprocessor, self.context, self.config, sources)
        return await self._run(run_full_build(self.context))

    async def execute(self, action: ChangeAction, paths: list[Path]) -> bool:
        """Handle one debounced batch of changes.

        Errors are reported and swallowed so the watch loop keeps running.
        """
        try:
            if action is ChangeAction.RELOAD_CONFIG:
                return await self._reload()

            for path in paths:
                log.dim(f"changed: {path}")
            await run_preprocessor(self.preprocessor, self.context, self.config, paths)
            return await self._run(run_incremental_build(paths, self.context))
        except Exception as e:
            log.error(f"{action.name.lower()} failed: {e}")
            return False

    async def _reload(self) -> bool:
        log.info("  Configuration changed, restarting bundle session")
        await self.context.close()
        self.context.engine = None
        self.context.is_watch = True
        self.context.file_cache.clear()
        try:
            self.config = resolve_config(self.context)
            self.preprocessor = load_preprocessor(self.config)
        except ConfigError as e:
            log.error(str(e))
            return False
        return await self.full_build()

    async def _run(self, build) -> bool:
        self._build_count += 1
        try:
            await build
            return True
        except SupersededRequest:
            self._superseded_count += 1
            return False
        except BuildFailure:
            # Already reported by the orchestrator; keep watching
            return False
        except ConfigError as e:
            log.error(str(e))
            return False


# =============================================================================
# File System Event Handler
# =============================================================================


class RebundleEventHandler(FileSystemEventHandler):
    """Handles file system events and classifies them for rebuilding."""

    def __init__(self, classifier: ChangeClassifier, debouncer: Debouncer):
        super().__init__()
        self.classifier = classifier
        self.debouncer = debouncer

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(Path(event.src_path))

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(Path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(Path(event.src_path))
        self._handle(Path(event.dest_path))

    def _handle(self, path: Path) -> None:
        action = self.classifier.classify(path)
        if action is not None:
            self.debouncer.trigger(action, path.resolve())


# =============================================================================
# Commands
# =============================================================================


def create_context(args: argparse.Namespace, is_watch: bool = False) -> BuildContext:
    """Build a context from the shared command-line options."""
    root = get_project_root(Path(args.root) if args.root else None)
    return BuildContext(
        root_dir=root,
        www_dir=Path(args.www) if args.www else None,
        profile=resolve_profile(args.prod),
        is_watch=is_watch,
        config_file=Path(args.config) if args.config else None,
    )


def get_watch_targets(context: BuildContext, vendor_dir: str = DEFAULT_VENDOR_DIR) -> list[tuple[Path, bool]]:
    """Directories to observe, as (path, recursive) pairs."""
    targets: list[tuple[Path, bool]] = []
    src_dir = context.root_dir / "src"
    if src_dir.is_dir():
        targets.append((src_dir, True))
    targets.append((context.root_dir, False))

    seen = {path for path, _ in targets}
    for module in context.module_files:
        parent = module.parent
        if parent in seen or not parent.is_dir() or is_within(parent, src_dir):
            continue
        if vendor_dir in parent.parts:
            continue
        seen.add(parent)
        targets.append((parent, False))
    return targets


def cmd_build(args: argparse.Namespace) -> int:
    """Execute the build command."""
    context = create_context(args)
    log.header(f"rebundle build ({context.profile.value})")

    async def _build() -> bool:
        config = resolve_config(context)
        rebundler = Rebundler(context, config, load_preprocessor(config))
        return await rebundler.full_build()

    try:
        ok = asyncio.run(_build())
    except ConfigError as e:
        log.error(str(e))
        return 1
    return 0 if ok else 1


async def _watch(context: BuildContext) -> int:
    config = resolve_config(context)
    rebundler = Rebundler(context, config, load_preprocessor(config))

    await rebundler.full_build()

    loop = asyncio.get_running_loop()

    def on_change(action: ChangeAction, paths: list[Path]) -> None:
        asyncio.run_coroutine_threadsafe(rebundler.execute(action, paths), loop)

    debouncer = Debouncer(DEBOUNCE_SECONDS, on_change)
    handler = RebundleEventHandler(ChangeClassifier(context, config), debouncer)

    observer = Observer()
    for path, recursive in get_watch_targets(context, config.vendor_dir):
        try:
            observer.schedule(handler, str(path), recursive=recursive)
            log.info(f"  Watching: {path}")
        except OSError as e:
            log.warning(f"  Could not watch {path}: {e}")

    observer.start()
    log.info("")
    log.info("Watching for changes... (Ctrl+C to stop)")

    try:
        await asyncio.Event().wait()
    finally:
        debouncer.cancel()
        observer.stop()
        await asyncio.to_thread(observer.join, 5)
        await context.close()
        log.info(f"Builds performed: {rebundler.build_count} "
                 f"({rebundler.superseded_count} superseded)")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Execute the watch command."""
    context = create_context(args, is_watch=True)
    log.header(f"rebundle watch ({context.profile.value})")

    try:
        return asyncio.run(_watch(context))
    except ConfigError as e:
        log.error(str(e))
        return 1
    except KeyboardInterrupt:
        log.header("Shutting down")
        log.success("Watch mode stopped")
        return 0
