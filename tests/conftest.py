"""Shared fixtures: fake toolchain executables and a pipeline that records calls."""

import threading
import time
from pathlib import Path

import pytest

# PNG signature followed by junk; only ever compared byte for byte
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


class RecordingPipeline:
    """Stands in for Pipeline: counts runs and writes a fake PNG."""

    def __init__(self, delay: float = 0.0, fail_times: int = 0, error: Exception = None):
        self.calls = []
        self.delay = delay
        self.fail_times = fail_times
        self.error = error or RuntimeError("pipeline failed")
        self._lock = threading.Lock()

    def run(self, source_set, work_dir: Path) -> Path:
        with self._lock:
            self.calls.append(source_set.name)
            should_fail = len(self.calls) <= self.fail_times
        if self.delay:
            time.sleep(self.delay)
        if should_fail:
            raise self.error
        artifact = work_dir / f"{source_set.name}.png"
        artifact.write_bytes(PNG_BYTES)
        return artifact


@pytest.fixture
def recording_pipeline():
    return RecordingPipeline()


@pytest.fixture
def make_tool(tmp_path):
    """
    Create an executable /bin/sh script and return its path.

    Example:
        tool = make_tool("latex", 'echo "typesetting $3"')
    """
    bin_dir = tmp_path / "fakebin"
    bin_dir.mkdir()

    def _make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(0o755)
        return script

    return _make


@pytest.fixture
def sources_root(tmp_path):
    """Sources directory with a main document, a closure and a figures directory."""
    root = tmp_path / "latex"
    root.mkdir()
    (root / "diagram.tex").write_text("\\documentclass{article}\\begin{document}x\\end{document}\n")
    (root / "macros.tex").write_text("\\newcommand{\\x}{y}\n")
    figs = root / "figs"
    (figs / "logos").mkdir(parents=True)
    (figs / "arrow.eps").write_text("%!PS\n")
    (figs / "logos" / "brand.eps").write_text("%!PS\n")
    (figs / ".cache").mkdir()
    (figs / ".cache" / "junk.eps").write_text("junk")
    (figs / ".DS_Store").write_text("junk")
    return root


@pytest.fixture
def pipeline_factory():
    """RecordingPipeline class, for tests that need delays or failures."""
    return RecordingPipeline


@pytest.fixture
def png_bytes():
    return PNG_BYTES
