"""
Build orchestrator for rebundle.

Entry points for callers: a full build (one-shot, or the first build of a
watch session) and an incremental build after files changed. Both settle the
context's bundle state and reconcile the output directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from rebundle.build.bridge import VirtualFileBridge
from rebundle.build.config import BundleConfig, resolve_config
from rebundle.build.context import BuildContext, BundleState, PendingRequest
from rebundle.build.coordinator import RebuildCoordinator
from rebundle.build.engine import BundlingEngine, OutputManifest, load_engine_factory
from rebundle.build.errors import BuildFailure, ConfigError, SupersededRequest
from rebundle.build.reconciler import reconcile_outputs
from rebundle.core.timing import TimingContext, timing_summary
from rebundle.core.utils import log

_log = logging.getLogger(__name__)


# =============================================================================
# Setup
# =============================================================================


def _prepare(context: BuildContext) -> BundleConfig:
    config = resolve_config(context)
    context.output_dir = config.output_path
    return config


def get_engine(context: BuildContext, config: BundleConfig) -> BundlingEngine:
    """Return the context's engine, creating it from the config on first use."""
    if context.engine is None:
        if not config.engine:
            raise ConfigError(
                "No bundling engine configured; set 'engine: package.module:factory' "
                "in rebundle.yaml"
            )
        factory = load_engine_factory(config.engine)
        context.engine = factory()
    return context.engine


def _make_bridge(context: BuildContext, config: BundleConfig) -> VirtualFileBridge:
    return VirtualFileBridge(
        context,
        vendor_dir=config.vendor_dir,
        source_extensions=config.source_extensions,
    )


def get_coordinator(context: BuildContext, config: BundleConfig) -> RebuildCoordinator:
    """Return the session's coordinator, creating it on first use."""
    if context.coordinator is None:
        context.coordinator = RebuildCoordinator(
            context,
            get_engine(context, config),
            config,
            _make_bridge(context, config),
        )
    return context.coordinator


def get_output_dest(context: BuildContext) -> Path:
    """Path of the primary bundle the entry point compiles to."""
    config = resolve_config(context)
    return config.output_path / f"{config.entry_point.stem}.js"


# =============================================================================
# Builds
# =============================================================================


async def _settle(
    context: BuildContext,
    config: BundleConfig,
    manifest: OutputManifest,
    generation: int,
    timings: dict[str, float],
    label: str,
) -> BundleState:
    with TimingContext(timings, "reconcile"):
        await reconcile_outputs(manifest, context, config.keep_files, generation)

    if not context.is_current(generation):
        _log.debug("%s: generation %d outdated during reconciliation", label, generation)
        raise SupersededRequest()

    context.bundle_state = BundleState.SUCCESSFUL_BUILD
    log.success(f"{label} finished: {len(manifest)} outputs ({timing_summary(timings)})")
    return context.bundle_state


def _mark_failed(context: BuildContext, failure: BuildFailure, generation: int) -> None:
    if not context.is_current(generation):
        _log.debug("failure of generation %d outdated by a newer outcome: %s", generation, failure)
        return
    context.bundle_state = BundleState.REQUIRES_BUILD
    log.error(str(failure))


def _failure_generation(
    context: BuildContext,
    request: Optional[PendingRequest],
    generation: Optional[int],
) -> int:
    if generation is not None:
        return generation
    if request is not None and request.generation is not None:
        return request.generation
    return context.next_generation()


async def _build(context: BuildContext, label: str, failure_message: str) -> BundleState:
    config = _prepare(context)
    timings: dict[str, float] = {}
    request: Optional[PendingRequest] = None
    generation: Optional[int] = None

    try:
        with TimingContext(timings, "bundle"):
            if context.is_watch:
                request = get_coordinator(context, config).submit()
                manifest = await request.future
                generation = request.generation
            else:
                engine = get_engine(context, config)
                manifest = await engine.build(config, _make_bridge(context, config))
                generation = context.next_generation()
        return await _settle(context, config, manifest, generation, timings, label)
    except SupersededRequest:
        _log.debug("%s superseded by a newer request", label)
        raise
    except ConfigError:
        context.bundle_state = BundleState.REQUIRES_BUILD
        raise
    except BuildFailure as e:
        _mark_failed(context, e, _failure_generation(context, request, generation))
        raise
    except Exception as e:
        failure = BuildFailure(failure_message, [str(e) or type(e).__name__])
        _mark_failed(context, failure, _failure_generation(context, request, generation))
        raise failure from e


async def run_full_build(context: BuildContext) -> BundleState:
    """Bundle everything once, or start the watch session when watching.

    Raises:
        BuildFailure: the build failed; bundle state is REQUIRES_BUILD.
        SupersededRequest: watch mode only, a newer outcome took over.
    """
    return await _build(context, "bundle", "Bundle failed")


async def run_incremental_build(
    changed_files: Iterable[Path | str],
    context: BuildContext,
) -> BundleState:
    """Rebuild after ``changed_files`` were preprocessed into the file cache.

    Raises:
        BuildFailure: this was the latest request and it failed.
        SupersededRequest: a newer outcome took over; bundle state unchanged.
    """
    changed = [Path(p) for p in changed_files]
    _log.debug("incremental build for %d changed file(s)", len(changed))

    context.is_watch = True
    return await _build(context, "bundle update", "Bundle update failed")
