"""
Binary Lookup Module

Resolves short executable names ("latex", "gs", "pnmtopng") to absolute paths.

BinaryLocator probes the standard installation directories first and falls back
to the system search utility (which). FixedResolver maps names to paths
directly and never spawns a process, for tests and pinned toolchains.
"""

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional, Sequence

from texraster.contexts.rendering.exceptions import BinaryNotFound
from texraster.contexts.rendering.logger import _log_debug

# Probed in order; the first regular file wins
STANDARD_PATHS = (
    "/bin",
    "/usr/bin",
    "/usr/local/bin",
    "/opt/local/bin",
    "/sbin",
    "/usr/sbin",
    "/usr/local/sbin",
    "/opt/local/sbin",
)

SEARCH_COMMAND = ("/usr/bin/which",)


class ExecutableResolver(ABC):
    """Turns a short executable name into an invocable absolute path."""

    @abstractmethod
    def locate(self, name: str) -> Path:
        """
        Resolve a short name.

        Raises:
            BinaryNotFound: If the executable cannot be found
        """


class BinaryLocator(ExecutableResolver):
    """
    Probing resolver with a search-utility fallback.

    Results are not cached; every call probes again.
    """

    def __init__(
        self,
        search_paths: Sequence[object] = STANDARD_PATHS,
        search_command: Sequence[str] = SEARCH_COMMAND,
    ):
        """
        Args:
            search_paths: Directories probed in order
            search_command: Command prefix for the fallback search; the short name is appended
        """
        self.search_paths = [Path(p) for p in search_paths]
        self.search_command = list(search_command)

    def locate(self, name: str) -> Path:
        found = self._probe(name)
        if found is None:
            found = self._search(name)
        if found is None:
            raise BinaryNotFound(name)
        _log_debug(f"Binary '{name}' resolved to {found}")
        return found

    def _probe(self, name: str) -> Optional[Path]:
        for directory in self.search_paths:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    def _search(self, name: str) -> Optional[Path]:
        """Ask the search utility; None on non-zero exit, empty output or if it can't start."""
        try:
            result = subprocess.run(
                [*self.search_command, name],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            _log_debug(f"Search utility {self.search_command} could not start: {e}")
            return None

        if result.returncode != 0:
            return None

        output = result.stdout.strip()
        if not output:
            return None
        return Path(output.splitlines()[0].strip())


class FixedResolver(ExecutableResolver):
    """Resolver backed by a fixed name-to-path mapping."""

    def __init__(self, binaries: Mapping[str, object]):
        self.binaries = {name: Path(path) for name, path in binaries.items()}

    def locate(self, name: str) -> Path:
        if name not in self.binaries:
            raise BinaryNotFound(name)
        return self.binaries[name]
