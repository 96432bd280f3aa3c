"""
Tests for the preprocessing hooks that fill the file cache.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from rebundle.build.config import resolve_config
from rebundle.build.context import BuildContext
from rebundle.build.errors import ConfigError
from rebundle.build.loaders import (
    cache_transformed,
    copy_sources,
    discover_sources,
    load_preprocessor,
    run_preprocessor,
)


# =============================================================================
# cache_transformed
# =============================================================================


@pytest.mark.evergreen
class TestCacheTransformed:
    """Transformed output is stored under the compiled-output key."""

    @pytest.fixture(autouse=True)
    def write_through(self, context: BuildContext) -> None:
        context.write_to_disk = True

    def test_stores_script_under_js_key(self, context: BuildContext, project_root: Path) -> None:
        source = project_root / "src" / "app" / "main.ts"

        entry = cache_transformed(context, source, "compiled();")

        assert entry is not None
        assert entry.path == project_root / "src" / "app" / "main.js"
        assert context.file_cache.get(project_root / "src" / "app" / "main.js").content == "compiled();"

    def test_stores_source_map_alongside(self, context: BuildContext, project_root: Path) -> None:
        source = project_root / "src" / "app" / "main.ts"

        cache_transformed(context, source, "compiled();", {"version": 3, "mappings": ""})

        stored = context.file_cache.get(project_root / "src" / "app" / "main.js.map")
        assert json.loads(stored.content) == {"version": 3, "mappings": ""}

    def test_string_source_map_kept_verbatim(self, context: BuildContext, project_root: Path) -> None:
        source = project_root / "src" / "app" / "main.tsx"

        cache_transformed(context, source, "x", '{"version":3}')

        assert context.file_cache.get(project_root / "src" / "app" / "main.js.map").content == '{"version":3}'

    def test_noop_without_write_through(self, context: BuildContext, project_root: Path) -> None:
        context.write_to_disk = False

        entry = cache_transformed(context, project_root / "src" / "app" / "main.ts", "x")

        assert entry is None
        assert len(context.file_cache) == 0


# =============================================================================
# Source Discovery and Copy
# =============================================================================


@pytest.mark.evergreen
class TestCopySources:
    """The pass-through preprocessor."""

    def test_discover_skips_vendor_and_other_files(self, context: BuildContext, project_root: Path) -> None:
        app = project_root / "src" / "app"
        (app / "main.ts").write_text("main")
        (app / "view.tsx").write_text("view")
        (app / "legacy.js").write_text("legacy")
        (app / "notes.md").write_text("notes")
        vendored = project_root / "src" / "node_modules" / "dep.js"
        vendored.parent.mkdir()
        vendored.write_text("dep")

        found = discover_sources(context, resolve_config(context))

        assert [p.name for p in found] == ["legacy.js", "main.ts", "view.tsx"]

    def test_copy_maps_sources_to_js_keys(self, context: BuildContext, project_root: Path) -> None:
        app = project_root / "src" / "app"
        (app / "main.ts").write_text("main();")
        (app / "legacy.js").write_text("legacy();")

        copy_sources(context, resolve_config(context), [app / "main.ts", app / "legacy.js"])

        assert context.file_cache.get(app / "main.js").content == "main();"
        assert context.file_cache.get(app / "legacy.js").content == "legacy();"
        assert app / "main.ts" not in context.file_cache

    def test_deleted_source_evicted(self, context: BuildContext, project_root: Path) -> None:
        app = project_root / "src" / "app"
        context.file_cache.set(app / "gone.js", "old")

        copy_sources(context, resolve_config(context), [app / "gone.ts"])

        assert app / "gone.js" not in context.file_cache

    def test_vendor_files_not_cached(self, context: BuildContext, project_root: Path) -> None:
        vendor = project_root / "node_modules" / "lib" / "index.js"
        vendor.write_text("lib")

        copy_sources(context, resolve_config(context), [vendor])

        assert len(context.file_cache) == 0


# =============================================================================
# Preprocessor Loading
# =============================================================================


def record_paths(context, config, paths):
    context.file_cache.set(context.root_dir / "record.js", ",".join(p.name for p in paths))


async def record_paths_async(context, config, paths):
    await asyncio.sleep(0)
    record_paths(context, config, paths)


@pytest.mark.evergreen
class TestPreprocessor:
    """Configured preprocessors are loaded and called sync or async."""

    def test_default_is_copy_sources(self, context: BuildContext) -> None:
        assert load_preprocessor(resolve_config(context)) is copy_sources

    def test_configured_preprocessor(self, context: BuildContext, project_root: Path) -> None:
        (project_root / "rebundle.yaml").write_text(f"preprocessor: {__name__}:record_paths\n")

        assert load_preprocessor(resolve_config(context)) is record_paths

    def test_bad_reference(self, context: BuildContext, project_root: Path) -> None:
        (project_root / "rebundle.yaml").write_text("preprocessor: no_such_module_xyz:run\n")

        with pytest.raises(ConfigError):
            load_preprocessor(resolve_config(context))

    @pytest.mark.parametrize("preprocessor", [record_paths, record_paths_async])
    def test_run_sync_and_async(self, context: BuildContext, preprocessor) -> None:
        config = resolve_config(context)

        asyncio.run(run_preprocessor(preprocessor, context, config, [Path("a.ts"), Path("b.ts")]))

        assert context.file_cache.get(context.root_dir / "record.js").content == "a.ts,b.ts"
