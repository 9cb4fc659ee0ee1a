"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from loguru directly.
"""

from pathlib import Path
from typing import Dict

from loguru import logger

CONTEXT_PREFIX = "[render]"


# Wrapper functions with automatic [render] prefix


def _log_info(message: str) -> None:
    """Log info message with [render] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [render] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level rendering-specific logging helpers


def log_sources_resolved(document_name: str, files: Dict[str, object]) -> None:
    _log_debug(f"{len(files)} files found for '{document_name}': {sorted(files)}")


def log_stage_command(document_name: str, work_dir: Path, command: str) -> None:
    _log_debug(f"'{document_name}' in {work_dir}: running '{command}'")


def log_stage_failure(document_name: str, stage: str, exit_status: int, stderr: str) -> None:
    """
    Log a failing stage with its captured standard error.

    Uses opt(raw=True) so multi-line tool output keeps its original formatting.
    """
    _log_error(f"Compilation of '{document_name}' failed at '{stage}' with code #{exit_status}")
    if stderr:
        logger.opt(raw=True).error(f"\n{'=' * 80}\n{stage.upper()} STDERR:\n{'=' * 80}\n{stderr}\n")
