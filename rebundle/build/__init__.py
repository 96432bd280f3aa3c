"""
rebundle.build - Build orchestration in front of a bundling engine.

Provides the rebuild coordinator, the virtual file bridge, output
reconciliation, and the full/incremental build entry points.
"""

from rebundle.build.context import (
    BuildContext,
    BuildProfile,
    BundleState,
    FileCache,
    FileCacheEntry,
    PendingRequest,
)
from rebundle.build.errors import (
    RebundleError,
    BuildFailure,
    ConfigError,
    MissingCacheEntry,
    ReconciliationWarning,
    SupersededRequest,
)
from rebundle.build.config import (
    DEFAULT_KEEP_FILES,
    BundleConfig,
    UserConfig,
    load_user_config,
    resolve_config,
    resolve_profile,
)
from rebundle.build.engine import (
    BundlingEngine,
    EngineResult,
    LoadResult,
    OutputManifest,
)
from rebundle.build.bridge import VirtualFileBridge
from rebundle.build.coordinator import RebuildCoordinator
from rebundle.build.reconciler import reconcile_outputs
from rebundle.build.orchestrator import (
    get_output_dest,
    run_full_build,
    run_incremental_build,
)

__all__ = [
    # Context
    "BuildContext",
    "BuildProfile",
    "BundleState",
    "FileCache",
    "FileCacheEntry",
    "PendingRequest",
    # Errors
    "RebundleError",
    "BuildFailure",
    "ConfigError",
    "MissingCacheEntry",
    "ReconciliationWarning",
    "SupersededRequest",
    # Config
    "DEFAULT_KEEP_FILES",
    "BundleConfig",
    "UserConfig",
    "load_user_config",
    "resolve_config",
    "resolve_profile",
    # Engine interface
    "BundlingEngine",
    "EngineResult",
    "LoadResult",
    "OutputManifest",
    # Components
    "VirtualFileBridge",
    "RebuildCoordinator",
    "reconcile_outputs",
    # Entry points
    "get_output_dest",
    "run_full_build",
    "run_incremental_build",
]
