"""
Interface to the external bundling engine.

The engine compiles the module graph; rebundle only drives it. An engine
implementation is looked up from the ``engine`` entry of the user config
(``"package.module:factory"``) and must satisfy ``BundlingEngine``.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping, Optional, Protocol, runtime_checkable

from rebundle.build.errors import ConfigError

if TYPE_CHECKING:
    from rebundle.build.bridge import VirtualFileBridge
    from rebundle.build.config import BundleConfig


# =============================================================================
# Engine Data Types
# =============================================================================


@dataclass(frozen=True)
class LoadResult:
    """Content handed back to the engine for one module load.

    ``loader`` tells the engine how to parse ``contents``; None lets the
    engine pick from the file extension as it would for a disk read.
    """

    contents: str
    loader: Optional[str] = None


@dataclass(frozen=True)
class OutputManifest:
    """Output file path -> input file paths that contributed to it."""

    outputs: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_metafile(cls, outputs: Mapping[str, Mapping[str, Any]]) -> "OutputManifest":
        """Build from the engine's ``{output: {"inputs": {input: meta}}}`` shape."""
        parsed: dict[str, frozenset[str]] = {}
        for output_path, meta in outputs.items():
            inputs = meta.get("inputs") or {}
            parsed[str(output_path)] = frozenset(str(p) for p in inputs)
        return cls(outputs=parsed)

    def output_paths(self, root_dir: Optional[Path] = None) -> set[Path]:
        """Output keys as absolute paths (relative keys resolve against root_dir)."""
        return {_absolute(p, root_dir) for p in self.outputs}

    def input_paths(self, root_dir: Optional[Path] = None) -> set[Path]:
        """Union of every input over all outputs, as absolute paths."""
        return {
            _absolute(p, root_dir)
            for inputs in self.outputs.values()
            for p in inputs
        }

    def __iter__(self) -> Iterator[str]:
        return iter(self.outputs)

    def __len__(self) -> int:
        return len(self.outputs)


def _absolute(path: str, root_dir: Optional[Path]) -> Path:
    candidate = Path(path)
    if candidate.is_absolute() or root_dir is None:
        return candidate
    return root_dir / candidate


@dataclass(frozen=True)
class EngineResult:
    """What the engine reports through the completion hook after a build."""

    manifest: Optional[OutputManifest] = None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors and self.manifest is not None


# =============================================================================
# Engine Protocol
# =============================================================================


@runtime_checkable
class BundlingEngine(Protocol):
    """Capabilities rebundle needs from a bundling engine.

    Watch-mode contract: after ``start_watch`` and after every ``rebuild``,
    the engine calls ``bridge.on_end`` exactly once with an ``EngineResult``.
    Both calls may return before that build finishes. While building, the
    engine consults ``bridge.matches`` and reads matched modules through
    ``await bridge.load(path)``.
    """

    async def build(self, config: "BundleConfig", bridge: "VirtualFileBridge") -> OutputManifest:
        """One-shot build. Raises on failure."""
        ...

    async def start_watch(self, config: "BundleConfig", bridge: "VirtualFileBridge") -> None:
        """Start an incremental session and run its first build."""
        ...

    async def rebuild(self) -> None:
        """Rebuild the running session."""
        ...

    async def dispose(self) -> None:
        """Release the incremental session."""
        ...


EngineFactory = Callable[[], BundlingEngine]


def load_callable(reference: str, kind: str = "engine") -> Callable[..., Any]:
    """Resolve a ``"package.module:callable"`` reference.

    Raises:
        ConfigError: the reference is malformed, unimportable, or not callable.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(
            f"Invalid {kind} reference {reference!r}: expected 'package.module:callable'"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import {kind} module {module_name!r}: {e}") from e

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ConfigError(f"{kind.capitalize()} module {module_name!r} has no attribute {attr!r}") from e

    if not callable(target):
        raise ConfigError(f"{kind.capitalize()} reference {reference!r} is not callable")
    return target


def load_engine_factory(reference: str) -> EngineFactory:
    """Resolve an engine factory from the ``engine`` config entry."""
    return load_callable(reference, "engine")
