"""
Build Orchestration Module

Compiles every document of a build configuration through the compilation
cache and copies each PNG into the output directory.

A failure in one document does not stop the others: failures are collected in
the BuildReport and the caller decides what to do with them.
"""

import shutil
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from texraster.contexts.building.config import BuildConfig
from texraster.contexts.building.logger import (
    _log_error,
    _log_info,
    log_build_result,
    log_build_start,
    log_document_result,
)
from texraster.contexts.rendering.cache import CompilationCache
from texraster.contexts.rendering.exceptions import (
    CompilationFailed,
    TexRasterError,
    UnsupportedPlatform,
)
from texraster.contexts.rendering.sources import document_name
from texraster.utils.event_logging import log_compile_event

EVENT_SOURCE = "building"


@dataclass
class BuildReport:
    """
    Outcome of a build.

    Attributes:
        compiled: Document name -> PNG path in the output directory
        failures: Document name -> error that stopped it
        cached: Names whose artifact was reused without running the pipeline
        skipped: True if the build did nothing because of the skip flag
    """

    compiled: Dict[str, Path] = field(default_factory=dict)
    failures: Dict[str, Exception] = field(default_factory=dict)
    cached: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.failures


def check_platform(platform: Optional[str] = None) -> None:
    """
    Reject platforms the toolchain pipeline cannot run on.

    Raises:
        UnsupportedPlatform: On Windows
    """
    platform = platform if platform is not None else sys.platform
    if platform.startswith("win"):
        raise UnsupportedPlatform(platform)


def save_artifact(artifact: Path, output_dir: Path) -> Path:
    """Copy a compiled PNG into the output directory, returning the copy's path."""
    target = Path(output_dir) / Path(artifact).name
    shutil.copy2(artifact, target)
    return target


def run_build(config: BuildConfig, cache: Optional[CompilationCache] = None) -> BuildReport:
    """
    Compile all documents of a build configuration.

    Args:
        config: Build parameters
        cache: Compilation cache to use (default: one rooted at config.temp_dir)

    Returns:
        BuildReport with per-document results

    Raises:
        UnsupportedPlatform: If running on Windows
        ValueError: If the sources directory does not exist
    """
    if config.skip:
        _log_info("Execution skipped because of 'skip' option")
        return BuildReport(skipped=True)

    check_platform()

    if not config.sources_dir.is_dir():
        raise ValueError(f"Directory '{config.sources_dir}' doesn't exist")

    if not config.output_dir.exists():
        config.output_dir.mkdir(parents=True, exist_ok=True)
        _log_info(f"Directories created for {config.output_dir}")

    if cache is None:
        cache = CompilationCache(config.temp_dir, config.sources_dir, config.closures)

    references = sorted(set(config.sources))
    log_build_start(references, config.closures, config.jobs)

    report = BuildReport()
    references = _drop_name_collisions(references, report)

    if config.jobs > 1 and len(references) > 1:
        with ThreadPoolExecutor(max_workers=config.jobs) as executor:
            outcomes = list(
                executor.map(lambda ref: _build_one(cache, ref, config), references)
            )
    else:
        outcomes = [_build_one(cache, ref, config) for ref in references]

    for name, outcome, cached in outcomes:
        if isinstance(outcome, Exception):
            report.failures[name] = outcome
        else:
            report.compiled[name] = outcome
            if cached:
                report.cached.append(name)

    log_build_result(report)
    return report


def _drop_name_collisions(references: List[str], report: BuildReport) -> List[str]:
    """
    Remove references whose document names collide and record them as failures.

    Two references with the same stem would share one working directory and
    one output file, so neither is compiled.
    """
    by_name: Dict[str, List[str]] = {}
    for reference in references:
        try:
            name = document_name(reference)
        except ValueError:
            name = reference
        by_name.setdefault(name, []).append(reference)

    kept = []
    for name, refs in by_name.items():
        if len(refs) == 1:
            kept.extend(refs)
            continue
        error = ValueError(f"References {', '.join(refs)} all compile to document '{name}'")
        _log_error(str(error))
        report.failures[name] = error
    return kept


def _build_one(
    cache: CompilationCache, reference: str, config: BuildConfig
) -> Tuple[str, Union[Path, Exception], bool]:
    """Compile and save one document; errors are returned, not raised."""
    start_time = time.time()
    try:
        name = document_name(reference)
    except ValueError as e:
        _log_error(f"Failed to compile '{reference}': {e}")
        return reference, e, False

    try:
        artifact, cached = cache.get_or_compile(reference)
        saved_to = save_artifact(artifact, config.output_dir)
    except (TexRasterError, ValueError, OSError) as e:
        elapsed = time.time() - start_time
        _log_error(f"Failed to compile '{reference}': {e}")
        extra = {"error_kind": type(e).__name__, "message": str(e), "elapsed_s": round(elapsed, 2)}
        if isinstance(e, CompilationFailed):
            extra["error_log"] = str(e.error_log)
            extra["stage"] = e.stage
        log_compile_event(config.events_file, "compile_failed", name, EVENT_SOURCE, **extra)
        return name, e, False

    elapsed = time.time() - start_time
    log_document_result(name, saved_to, elapsed, cached)
    log_compile_event(
        config.events_file,
        "cache_hit" if cached else "compile_completed",
        name,
        EVENT_SOURCE,
        artifact=str(artifact),
        output=str(saved_to),
        elapsed_s=round(elapsed, 2),
    )
    return name, saved_to, cached
