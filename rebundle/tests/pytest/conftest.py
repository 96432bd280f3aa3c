"""
Shared pytest fixtures for rebundle tests.

Provides a scripted bundling engine whose build ends are released by the
test, so notification order can be chosen independently of trigger order.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip (production tests)
  @pytest.mark.dev       - Development/WIP tests, toggle-able
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence, Union

import pytest

from rebundle.build.bridge import VirtualFileBridge
from rebundle.build.config import BundleConfig
from rebundle.build.context import BuildContext
from rebundle.build.engine import EngineResult, OutputManifest
from rebundle.build.errors import MissingCacheEntry


# =============================================================================
# Scripted Engine
# =============================================================================

ScriptedOutcome = Union[OutputManifest, Sequence[str]]


class ScriptedEngine:
    """Bundling engine double.

    Watch-mode builds stay open until the test calls ``finish`` or ``fail``,
    unless outcomes were queued with ``queue``: then every start/rebuild
    loads ``load_paths`` through the bridge and reports the next outcome.
    """

    def __init__(
        self,
        one_shot: Optional[Union[OutputManifest, Exception]] = None,
        load_paths: Sequence[Path] = (),
    ):
        self.one_shot = one_shot if one_shot is not None else OutputManifest()
        self.load_paths = list(load_paths)
        self.bridge: Optional[VirtualFileBridge] = None
        self.config: Optional[BundleConfig] = None
        self.loaded: dict[Path, str] = {}
        self.start_count = 0
        self.rebuild_count = 0
        self.disposed = False
        self.start_error: Optional[Exception] = None
        self._queued: list[ScriptedOutcome] = []

    # --- BundlingEngine ---

    async def build(self, config: BundleConfig, bridge: VirtualFileBridge) -> OutputManifest:
        self.config = config
        await self._load_all(bridge)
        if isinstance(self.one_shot, Exception):
            raise self.one_shot
        return self.one_shot

    async def start_watch(self, config: BundleConfig, bridge: VirtualFileBridge) -> None:
        self.config = config
        self.bridge = bridge
        self.start_count += 1
        if self.start_error is not None:
            raise self.start_error
        await self._auto_complete()

    async def rebuild(self) -> None:
        self.rebuild_count += 1
        await self._auto_complete()

    async def dispose(self) -> None:
        self.disposed = True

    # --- test controls ---

    def queue(self, *outcomes: ScriptedOutcome) -> None:
        self._queued.extend(outcomes)

    def finish(self, manifest: OutputManifest) -> None:
        assert self.bridge is not None, "watch session not started"
        self.bridge.on_end(EngineResult(manifest=manifest))

    def fail(self, *errors: str) -> None:
        assert self.bridge is not None, "watch session not started"
        self.bridge.on_end(EngineResult(errors=tuple(errors)))

    # --- internals ---

    async def _load_all(self, bridge: VirtualFileBridge) -> list[str]:
        errors: list[str] = []
        for path in self.load_paths:
            try:
                result = await bridge.load(path)
            except MissingCacheEntry as e:
                errors.append(str(e))
                continue
            self.loaded[Path(path)] = result.contents
        return errors

    async def _auto_complete(self) -> None:
        if not self._queued:
            return
        outcome = self._queued.pop(0)
        errors = await self._load_all(self.bridge)
        if isinstance(outcome, OutputManifest) and not errors:
            self.bridge.on_end(EngineResult(manifest=outcome))
        else:
            errors.extend([] if isinstance(outcome, OutputManifest) else list(outcome))
            self.bridge.on_end(EngineResult(errors=tuple(errors)))


async def drain(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_manifest(outputs: dict[Path | str, Sequence[Path | str]]) -> OutputManifest:
    return OutputManifest.from_metafile(
        {str(out): {"inputs": {str(i): {} for i in inputs}} for out, inputs in outputs.items()}
    )


# =============================================================================
# Fixtures
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip (production tests)"
    )
    config.addinivalue_line(
        "markers",
        "dev: development/WIP tests, toggle-able for active development"
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep profile and source-map selection independent of the host shell."""
    monkeypatch.delenv("REBUNDLE_PROFILE", raising=False)
    monkeypatch.delenv("REBUNDLE_SOURCE_MAP", raising=False)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A project tree with src/, www/build/ and a vendor directory."""
    root = tmp_path.resolve() / "project"
    (root / "src" / "app").mkdir(parents=True)
    (root / "www" / "build").mkdir(parents=True)
    (root / "node_modules" / "lib").mkdir(parents=True)
    return root


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def context(project_root: Path, engine: ScriptedEngine) -> BuildContext:
    ctx = BuildContext(root_dir=project_root)
    ctx.engine = engine
    return ctx
