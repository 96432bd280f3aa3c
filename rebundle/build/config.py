"""
Build configuration for rebundle.

Per-profile bundle settings, the user override file, and profile selection.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rebundle.build.context import BuildContext, BuildProfile
from rebundle.build.errors import ConfigError
from rebundle.core.utils import DEFAULT_CONFIG_NAME, DEFAULT_VENDOR_DIR

# =============================================================================
# Constants
# =============================================================================

PROFILE_ENV_VAR = "REBUNDLE_PROFILE"
SOURCE_MAP_ENV_VAR = "REBUNDLE_SOURCE_MAP"

DEFAULT_ENTRY_POINT = "{{ROOT}}/src/app/main.ts"
DEFAULT_OUTPUT_PATH = "{{BUILD}}"
DEFAULT_SOURCE_EXTENSIONS = [".ts", ".tsx"]

# Produced by steps outside the bundle; never treated as stale output
DEFAULT_KEEP_FILES = ["main.css", "polyfills.js"]


# =============================================================================
# User Override File
# =============================================================================


class ProfileOverrides(BaseModel):
    """Fields a user may override for one profile."""

    model_config = ConfigDict(extra="forbid")

    entry_point: Optional[str] = Field(None, description="Entry module, may use {{ROOT}}")
    output_path: Optional[str] = Field(None, description="Output directory, may use {{BUILD}}")
    public_path: Optional[str] = Field(None, description="URL prefix for emitted chunks")
    source_map_mode: Optional[str] = Field(None, description="Source map mode, 'none' disables")
    minify: Optional[bool] = None
    splitting: Optional[bool] = None
    format: Optional[str] = None
    resolve_extensions: Optional[List[str]] = None
    define: Optional[Dict[str, str]] = None
    external: Optional[List[str]] = None
    inject: Optional[List[str]] = None
    log_level: Optional[str] = None


class UserConfig(BaseModel):
    """Contents of ``rebundle.yaml``."""

    model_config = ConfigDict(extra="forbid")

    engine: Optional[str] = Field(None, description="Engine factory as 'package.module:callable'")
    preprocessor: Optional[str] = Field(
        None, description="Preprocessor as 'package.module:callable'"
    )
    vendor_dir: str = Field(DEFAULT_VENDOR_DIR, description="Directory read straight from disk")
    source_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS),
        description="Extensions whose cached output lives under the .js key",
    )
    keep_files: List[str] = Field(
        default_factory=lambda: list(DEFAULT_KEEP_FILES),
        description="Output files managed outside the bundle manifest",
    )
    dev: ProfileOverrides = Field(default_factory=ProfileOverrides)
    prod: ProfileOverrides = Field(default_factory=ProfileOverrides)

    def overrides_for(self, profile: BuildProfile) -> ProfileOverrides:
        return self.prod if profile is BuildProfile.PROD else self.dev


def load_user_config(path: Optional[Path]) -> UserConfig:
    """Parse and validate the override file. A missing file yields defaults."""
    if path is None or not path.exists():
        return UserConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        return UserConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}:\n{e}") from e


# =============================================================================
# Resolved Bundle Config
# =============================================================================


@dataclass
class BundleConfig:
    """Everything the engine needs for one profile."""

    entry_point: Path
    output_path: Path
    source_map_mode: Optional[str]
    public_path: str = "/build"
    minify: bool = False
    incremental: bool = True
    splitting: bool = True
    format: str = "esm"
    resolve_extensions: list[str] = field(default_factory=lambda: [".ts", ".js"])
    define: dict[str, str] = field(
        default_factory=lambda: {"global": "window", "this": "globalThis"}
    )
    external: list[str] = field(default_factory=lambda: ["crypto"])
    inject: list[str] = field(default_factory=list)
    log_level: str = "error"
    metafile: bool = True

    # Orchestration settings (not passed to the engine's compiler)
    engine: Optional[str] = None
    preprocessor: Optional[str] = None
    vendor_dir: str = DEFAULT_VENDOR_DIR
    source_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS))
    keep_files: list[str] = field(default_factory=lambda: list(DEFAULT_KEEP_FILES))

    @property
    def entry_points(self) -> list[Path]:
        return [self.entry_point]


def replace_path_vars(context: BuildContext, value: str) -> str:
    """Expand {{ROOT}}, {{WWW}} and {{BUILD}} placeholders."""
    return (
        value.replace("{{ROOT}}", str(context.root_dir))
        .replace("{{WWW}}", str(context.www_dir))
        .replace("{{BUILD}}", str(context.output_dir))
    )


def resolve_profile(prod: bool = False) -> BuildProfile:
    """Pick the profile from the --prod flag, then REBUNDLE_PROFILE, then dev."""
    if prod:
        return BuildProfile.PROD
    value = os.environ.get(PROFILE_ENV_VAR, "").strip().lower()
    if not value:
        return BuildProfile.DEV
    try:
        return BuildProfile(value)
    except ValueError:
        raise ConfigError(
            f"{PROFILE_ENV_VAR}={value!r} is not a profile "
            f"(expected one of: {', '.join(p.value for p in BuildProfile)})"
        ) from None


def _default_source_map(profile: BuildProfile) -> Optional[str]:
    value = os.environ.get(SOURCE_MAP_ENV_VAR)
    if value is None:
        return None if profile is BuildProfile.PROD else "source-map"
    if value.strip().lower() in ("", "none", "false"):
        return None
    return value


def get_config_path(context: BuildContext) -> Path:
    if context.config_file is not None:
        return context.config_file
    return context.root_dir / DEFAULT_CONFIG_NAME


def resolve_config(context: BuildContext, profile: Optional[BuildProfile] = None) -> BundleConfig:
    """Resolve the bundle config for ``profile`` (default: the context's)."""
    profile = profile or context.profile
    user = load_user_config(get_config_path(context))
    overrides = user.overrides_for(profile)

    config = BundleConfig(
        entry_point=Path(replace_path_vars(context, overrides.entry_point or DEFAULT_ENTRY_POINT)),
        output_path=Path(replace_path_vars(context, overrides.output_path or DEFAULT_OUTPUT_PATH)),
        source_map_mode=_default_source_map(profile),
        minify=profile is BuildProfile.PROD,
        incremental=profile is not BuildProfile.PROD,
        engine=user.engine,
        preprocessor=user.preprocessor,
        vendor_dir=user.vendor_dir,
        source_extensions=list(user.source_extensions),
        keep_files=list(user.keep_files),
    )

    if overrides.source_map_mode is not None:
        mode = overrides.source_map_mode
        config.source_map_mode = None if mode.lower() in ("none", "false") else mode

    explicit = overrides.model_dump(
        exclude_none=True,
        exclude={"entry_point", "output_path", "source_map_mode"},
    )
    if "inject" in explicit:
        explicit["inject"] = [replace_path_vars(context, p) for p in explicit["inject"]]
    return replace(config, **explicit)
