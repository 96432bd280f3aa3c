"""
Output reconciliation.

Keeps the output directory in step with the latest successful build: records
which sources fed the bundle, deletes output files the manifest no longer
lists, and refreshes the list of emitted scripts for the copy step.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from rebundle.build.config import DEFAULT_KEEP_FILES
from rebundle.build.context import BuildContext
from rebundle.build.engine import OutputManifest
from rebundle.build.errors import ReconciliationWarning
from rebundle.core.utils import log

_log = logging.getLogger(__name__)

SCRIPT_SUFFIXES = (".js", ".js.map")


def _list_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file())


def _is_kept(path: Path, output_dir: Path, keep_files: frozenset[str]) -> bool:
    relative = path.relative_to(output_dir).as_posix()
    return relative in keep_files


async def _remove(path: Path) -> None:
    await asyncio.to_thread(path.unlink)


async def reconcile_outputs(
    manifest: OutputManifest,
    context: BuildContext,
    keep_files: Iterable[str] = DEFAULT_KEEP_FILES,
    generation: Optional[int] = None,
) -> list[Path]:
    """Bring the output directory in line with ``manifest``.

    Returns the stale files that were removed. Files that could not be
    removed are logged and recorded on ``context.reconciliation_warnings``.

    With ``generation`` set, the reconciliation stops as soon as a newer
    outcome is claimed on the context, so an older manifest never deletes
    files or overwrites the input list of a newer build.
    """
    if not context.is_current(generation):
        _log.debug("reconciler: generation %s outdated before start, skipped", generation)
        return []

    output_dir = context.output_dir
    retained = {p.resolve() for p in manifest.output_paths(context.root_dir)}
    keep = frozenset(keep_files)

    present = await asyncio.to_thread(_list_files, output_dir)
    if not context.is_current(generation):
        _log.debug("reconciler: generation %s outdated after listing, skipped", generation)
        return []

    context.module_files = sorted(manifest.input_paths(context.root_dir))
    stale = [
        path
        for path in present
        if path.resolve() not in retained and not _is_kept(path, output_dir, keep)
    ]

    results = await asyncio.gather(*(_remove(p) for p in stale), return_exceptions=True)

    removed: list[Path] = []
    for path, outcome in zip(stale, results):
        if isinstance(outcome, FileNotFoundError):
            continue
        if isinstance(outcome, Exception):
            warning = ReconciliationWarning(path, str(outcome))
            context.reconciliation_warnings.append(warning)
            log.warning(str(warning))
            continue
        removed.append(path)

    if removed:
        _log.debug("reconciler: removed %d stale file(s) from %s", len(removed), output_dir)

    listing = await asyncio.to_thread(_list_files, output_dir)
    if context.is_current(generation):
        set_bundled_files(context, listing)
    return removed


def set_bundled_files(context: BuildContext, files: Iterable[Path]) -> list[Path]:
    """Record the emitted script and source-map files for the copy step."""
    context.bundled_file_paths = [
        path for path in files if path.name.endswith(SCRIPT_SUFFIXES)
    ]
    return context.bundled_file_paths
