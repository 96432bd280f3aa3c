"""
Preprocessing hooks that fill the file cache before the engine runs.

The transform pipeline itself lives outside rebundle. These hooks are the
seam where its output enters the cache, plus a pass-through preprocessor for
projects whose sources need no transform.
"""

from __future__ import annotations

import inspect
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from rebundle.build.config import BundleConfig
from rebundle.build.context import BuildContext, FileCacheEntry
from rebundle.build.engine import load_callable
from rebundle.core.utils import change_extension, is_within

Preprocessor = Callable[
    [BuildContext, BundleConfig, list[Path]],
    Union[None, Awaitable[None]],
]


def cache_transformed(
    context: BuildContext,
    resource_path: Path | str,
    source: str,
    source_map: Optional[Any] = None,
) -> Optional[FileCacheEntry]:
    """Store a transformed module and its map under the compiled-output keys.

    Only writes when the context asks for write-through; returns the script
    entry, or None when nothing was stored.
    """
    if not context.write_to_disk:
        return None

    js_path = change_extension(Path(resource_path).resolve(), ".js")
    entry = context.file_cache.set(js_path, source)

    if source_map is not None:
        map_path = change_extension(js_path, ".js.map")
        content = source_map if isinstance(source_map, str) else json.dumps(source_map)
        context.file_cache.set(map_path, content)
    return entry


def discover_sources(context: BuildContext, config: BundleConfig) -> list[Path]:
    """Every cacheable source file under the entry point's source tree."""
    src_dir = context.root_dir / "src"
    if not src_dir.is_dir():
        src_dir = config.entry_point.parent
    if not src_dir.is_dir():
        return []

    suffixes = set(config.source_extensions) | {".js"}
    return sorted(
        path
        for path in src_dir.rglob("*")
        if path.is_file()
        and path.suffix in suffixes
        and config.vendor_dir not in path.parts
        and not is_within(path.resolve(), context.output_dir)
    )


def copy_sources(context: BuildContext, config: BundleConfig, paths: Iterable[Path]) -> None:
    """Cache each file unchanged under its compiled-output key.

    Deleted files are evicted from the cache.
    """
    source_extensions = set(config.source_extensions)
    for path in paths:
        path = Path(path).resolve()
        if config.vendor_dir in path.parts:
            continue
        key = change_extension(path, ".js") if path.suffix in source_extensions else path
        if not path.exists():
            context.file_cache.remove(key)
            continue
        context.file_cache.set(key, path.read_text(encoding="utf-8"))


def load_preprocessor(config: BundleConfig) -> Preprocessor:
    """The configured preprocessor, or ``copy_sources`` when none is set."""
    if not config.preprocessor:
        return copy_sources
    return load_callable(config.preprocessor, "preprocessor")


async def run_preprocessor(
    preprocessor: Preprocessor,
    context: BuildContext,
    config: BundleConfig,
    paths: Iterable[Path],
) -> None:
    """Call a sync or async preprocessor."""
    result = preprocessor(context, config, list(paths))
    if inspect.isawaitable(result):
        await result
