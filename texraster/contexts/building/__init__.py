"""
Building Context

Responsibilities:
- Loads build configuration (environment defaults + YAML build file)
- Rejects unsupported platforms
- Compiles every configured document and copies PNGs to the output directory
- Aggregates per-document failures into a report

Owns: build configuration, output directory
Never: Runs external tools directly (delegates to the rendering context)
"""

from texraster.contexts.building.builder import (
    BuildReport,
    check_platform,
    run_build,
    save_artifact,
)
from texraster.contexts.building.config import BuildConfig, load_build_config

__all__ = [
    "BuildConfig",
    "BuildReport",
    "check_platform",
    "load_build_config",
    "run_build",
    "save_artifact",
]
