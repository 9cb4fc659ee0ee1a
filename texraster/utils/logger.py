"""
Session logging for texraster commands.

Every CLI invocation gets its own log directory. The log file there receives
DEBUG output from all threads (stage commands, copied files, raw tool stderr);
the console shows the chosen level and up. Each session starts with a header
recording how texraster was run. The [render] and [build] wrappers live in the
context logger modules.
"""

import sys
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

import texraster

# Console colors for levels that differ from loguru's defaults
LEVEL_COLORS = {
    "WARNING": "<yellow>",
    "ERROR": "<red>",
    "CRITICAL": "<bold><red>",
}

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <7} | {thread.name} | {message}"
CONSOLE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | <level>{level: <7}</level> | <level>{message}</level>"
)


def setup_logger(
    context_name: str,
    log_dir: Path,
    extra_provenance: Optional[Dict[str, object]] = None,
    level_colors: Optional[Dict[str, str]] = None,
    console_level: str = "INFO",
) -> Path:
    """
    Route loguru output to <log_dir>/<context_name>.log and the console.

    Any previously installed sinks are removed, so calling this twice in one
    process starts a fresh session.

    Args:
        context_name: Log file stem, e.g. "build"
        log_dir: Session directory (created if absent)
        extra_provenance: Extra header lines, e.g. {"Sources": sources_dir}
        level_colors: Console color overrides per level
        console_level: Lowest level echoed to stdout

    Returns:
        Path to the session log file
    """
    log_dir.mkdir(exist_ok=True, parents=True)
    log_file = log_dir / f"{context_name}.log"

    logger.remove()

    for level_name, color in {**LEVEL_COLORS, **(level_colors or {})}.items():
        logger.level(level_name, color=color)

    # enqueue keeps lines from ThreadPoolExecutor workers whole
    logger.add(log_file, format=FILE_FORMAT, level="DEBUG", enqueue=True)
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=console_level, colorize=True)

    log_provenance(extra_provenance)
    return log_file


def log_provenance(extra_context: Optional[Dict[str, object]] = None) -> None:
    """Write the session header: invocation, texraster and Python versions, plus extras."""
    logger.info("=" * 80)
    logger.info(f"Command: {' '.join(sys.argv)}")
    logger.info(f"Working directory: {Path.cwd()}")
    logger.info(f"texraster {texraster.__version__} on Python {sys.version.split()[0]}")

    for key, value in (extra_context or {}).items():
        logger.info(f"{key}: {value}")

    logger.info("=" * 80)
