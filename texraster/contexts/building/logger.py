"""
Building context logger.

Provides logging interface for building context with automatic [build] prefix.
All building modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from texraster.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[build]"


def setup_building_logger(
    log_dir: Path, sources_dir: Path, temp_dir: Path, console_level: str = "INFO"
) -> Path:
    """
    Setup logger for building context.

    Args:
        log_dir: Directory for this build session
        sources_dir: Sources root, recorded in the provenance header
        temp_dir: Temp root, recorded in the provenance header
        console_level: Minimum level printed to the console

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="build",
        log_dir=log_dir,
        extra_provenance={"Sources": sources_dir, "Temp": temp_dir},
        console_level=console_level,
    )


# Wrapper functions with automatic [build] prefix


def _log_info(message: str) -> None:
    """Log info message with [build] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [build] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [build] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [build] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level building-specific logging helpers


def log_build_start(sources: list, closures: list, jobs: int) -> None:
    _log_info(f"Building {len(sources)} documents ({jobs} jobs)")
    _log_debug(f"  Sources: {sources}")
    _log_debug(f"  Closures: {closures}")


def log_document_result(name: str, saved_to, elapsed_time: float, cached: bool) -> None:
    how = "reused from cache" if cached else "compiled"
    _log_success(f"'{name}' {how} and saved as '{saved_to}', in {elapsed_time:.2f}s")


def log_build_result(report) -> None:
    """
    Log the summary of a build.

    Args:
        report: BuildReport from run_build()
    """
    total = len(report.compiled) + len(report.failures)
    if report.success:
        _log_success(f"Build succeeded: {len(report.compiled)}/{total} documents")
        return

    _log_error(f"Build failed: {len(report.failures)}/{total} documents failed")
    for name, error in sorted(report.failures.items()):
        _log_error(f"  {name}: {type(error).__name__}: {error}")
