"""
Compilation Cache Module

Maps document names to working directories under a temp root and compiles each
document at most once. A working directory counts as a cache entry only when it
holds a completion marker (_complete.json) written after a successful pipeline
run, so a directory left behind by a failed or interrupted compile is treated
as a miss and rebuilt from scratch.

Staleness is not detected: inputs are not hashed. Use invalidate() (or delete
the directory) after changing sources.
"""

import json
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from texraster.contexts.rendering.logger import _log_debug, _log_info, _log_warning
from texraster.contexts.rendering.pipeline import Pipeline, artifact_path
from texraster.contexts.rendering.sources import (
    check_document_name,
    document_name,
    resolve_sources,
)
from texraster.utils.timestamp import now_exact

COMPLETION_MARKER = "_complete.json"


@dataclass(frozen=True)
class CacheEntry:
    """
    A successfully compiled document.

    Attributes:
        document_name: Document identifier
        artifact: Path to the compiled PNG
        compiled_at: ISO 8601 timestamp of the compile
    """

    document_name: str
    artifact: Path
    compiled_at: str


class CompilationCache:
    """
    Compiles documents into per-name working directories, reusing earlier results.

    Calls for distinct names run independently; calls for the same name are
    serialized by a per-name lock so only one of them runs the pipeline.
    """

    def __init__(
        self,
        temp_root: Path,
        sources_root: Path,
        closures: Iterable[str] = (),
        pipeline: Optional[Pipeline] = None,
    ):
        """
        Args:
            temp_root: Directory holding one working directory per document (created if absent)
            sources_root: Directory that source references are relative to
            closures: References copied alongside every document
            pipeline: Pipeline to run on a miss (default: Pipeline())
        """
        self.temp_root = Path(temp_root)
        self.sources_root = Path(sources_root)
        self.closures = list(closures)
        self.pipeline = pipeline if pipeline is not None else Pipeline()

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        if not self.temp_root.exists():
            self.temp_root.mkdir(parents=True, exist_ok=True)
            _log_info(f"Directory created: {self.temp_root}")

    def work_dir(self, name: str) -> Path:
        """
        Working directory of a document: always a direct child of the temp root.

        Raises:
            ValueError: If the name would point anywhere else
        """
        work_dir = self.temp_root / check_document_name(name)
        if work_dir.resolve().parent != self.temp_root.resolve():
            raise ValueError(f"'{name}' does not name a directory inside {self.temp_root}")
        return work_dir

    def compile(self, reference: str) -> Path:
        """
        Return the artifact for a document, compiling it on a miss.

        Sources are resolved before the working directory is created, so a
        missing source leaves no directory behind. Errors propagate unchanged;
        a failed compile keeps its working directory (with _output.log and
        _error.log) for inspection.

        Args:
            reference: Main document reference (e.g., "diagram.tex")

        Returns:
            Path to <temp_root>/<name>/<name>.png

        Raises:
            ValueError: If the reference is empty or does not name a valid document,
                or the sources root is missing
            MissingSourceFile, BinaryNotFound, MaterializationFailed, CompilationFailed
        """
        artifact, _cached = self.get_or_compile(reference)
        return artifact

    def get_or_compile(self, reference: str) -> Tuple[Path, bool]:
        """
        Like compile(), but also report whether the artifact came from the cache.

        The hit check happens under the document's lock, so the flag is exact
        even when other threads compile the same name.

        Returns:
            (artifact path, True if the pipeline was not run)
        """
        if not reference:
            raise ValueError("Empty name of source is not allowed")
        name = document_name(reference)
        work_dir = self.work_dir(name)

        with self._lock_for(name):
            entry = self.lookup(name)
            if entry is not None:
                _log_info(f"Source '{name}' doesn't require re-compiling")
                return entry.artifact, True

            source_set = resolve_sources(self.sources_root, reference, self.closures)

            if work_dir.exists():
                _log_warning(f"Discarding incomplete working directory {work_dir}")
                shutil.rmtree(work_dir)
            work_dir.mkdir(parents=True)
            _log_debug(f"Directory {work_dir} created")

            artifact = self.pipeline.run(source_set, work_dir)
            self._mark_complete(name, artifact)
            return artifact, False

    def lookup(self, name: str) -> Optional[CacheEntry]:
        """
        Return the cache entry for a name, or None if it has not compiled successfully.

        Raises:
            ValueError: If the name is not a valid document name
        """
        work_dir = self.work_dir(name)
        marker = work_dir / COMPLETION_MARKER
        if not marker.is_file():
            return None

        try:
            record = json.loads(marker.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None

        artifact = artifact_path(work_dir, name)
        if not artifact.is_file():
            return None
        return CacheEntry(
            document_name=name,
            artifact=artifact,
            compiled_at=record.get("compiled_at", ""),
        )

    def entries(self) -> List[CacheEntry]:
        """All successful entries under the temp root, sorted by name."""
        if not self.temp_root.is_dir():
            return []
        found = (
            self.lookup(d.name)
            for d in sorted(self.temp_root.iterdir())
            if d.is_dir() and not d.is_symlink()
        )
        return [entry for entry in found if entry is not None]

    def invalidate(self, name: str) -> bool:
        """
        Drop a document's working directory so the next compile rebuilds it.

        Returns:
            True if a directory was removed

        Raises:
            ValueError: If the name is not a valid document name
        """
        work_dir = self.work_dir(name)
        with self._lock_for(name):
            if not work_dir.exists():
                return False
            shutil.rmtree(work_dir)
            _log_info(f"Invalidated '{name}' ({work_dir} removed)")
            return True

    def _mark_complete(self, name: str, artifact: Path) -> None:
        record = {
            "document_name": name,
            "artifact": str(artifact),
            "compiled_at": now_exact(),
        }
        marker = self.work_dir(name) / COMPLETION_MARKER
        marker.write_text(json.dumps(record, indent=2) + "\n", encoding="utf-8")

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            if name not in self._locks:
                self._locks[name] = threading.Lock()
            return self._locks[name]
