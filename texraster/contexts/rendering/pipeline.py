"""
Stage Pipeline Module

Copies a SourceSet into a working directory and runs the external toolchain
that turns the main .tex file into a PNG:

    latex -> dvips -> gs | pnmalias | pnmcrop | pnmscale | pnmtopng > name.png

Each step is a Stage descriptor. Consecutive stages with pipe_to_next=True form
a segment whose processes are connected stdout-to-stdin by the OS, so raster
data never touches the disk. Segments run in order and the first failing one
stops the chain. Every stage's exit status is checked on its own, so a failure
is reported against the stage that caused it.
"""

import shlex
import shutil
import signal
import subprocess
import tempfile
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from texraster.contexts.rendering.binaries import BinaryLocator, ExecutableResolver
from texraster.contexts.rendering.exceptions import CompilationFailed, MaterializationFailed
from texraster.contexts.rendering.logger import (
    _log_debug,
    _log_success,
    log_stage_command,
    log_stage_failure,
)
from texraster.contexts.rendering.sources import SourceSet

OUTPUT_LOG = "_output.log"
ERROR_LOG = "_error.log"

# Shell convention for "command found but could not be executed"
CANNOT_EXECUTE = 126

NAME_PLACEHOLDER = "{name}"


@dataclass(frozen=True)
class Stage:
    """
    One external converter invocation.

    Attributes:
        binary: Short executable name, resolved through an ExecutableResolver
        args: Arguments; "{name}" is replaced with the document name
        pipe_to_next: Feed this stage's stdout into the next stage's stdin
        stdout_file: Write stdout to this file in the working directory ("{name}" allowed)
    """

    binary: str
    args: Tuple[str, ...] = ()
    pipe_to_next: bool = False
    stdout_file: Optional[str] = None

    def command(self, executable: Path, name: str) -> List[str]:
        return [str(executable), *(arg.replace(NAME_PLACEHOLDER, name) for arg in self.args)]

    def output_name(self, name: str) -> Optional[str]:
        if self.stdout_file is None:
            return None
        return self.stdout_file.replace(NAME_PLACEHOLDER, name)


DEFAULT_STAGES = (
    Stage("latex", ("-halt-on-error", "-interaction=nonstopmode", "{name}.tex")),
    Stage("dvips", ("-o", "{name}.ps", "{name}.dvi")),
    # 300 dpi raw pixmap on stdout
    Stage(
        "gs",
        ("-q", "-dNOPAUSE", "-dBATCH", "-sDEVICE=ppmraw", "-sOutputFile=-", "-r300", "{name}.ps"),
        pipe_to_next=True,
    ),
    Stage(
        "pnmalias",
        ("-bgcolor", "rgb:ff/ff/ff", "-falias", "-fgcolor", "rgb:00/00/00", "-weight", "0.6"),
        pipe_to_next=True,
    ),
    Stage("pnmcrop", ("-white",), pipe_to_next=True),
    Stage("pnmscale", ("0.5",), pipe_to_next=True),
    Stage("pnmtopng", ("-interlace",), stdout_file="{name}.png"),
)


@dataclass
class _StageResult:
    stage: Stage
    exit_status: int
    stderr: bytes


def materialize(source_set: SourceSet, work_dir: Path) -> List[Path]:
    """
    Copy every file of a SourceSet into the working directory.

    Parent directories are created as needed. Every target must stay inside
    work_dir. Files already copied are left in place if a later copy fails.

    Returns:
        Paths written, in SourceSet order

    Raises:
        MaterializationFailed: If any file cannot be read or written, or its
            relative path leads outside work_dir
    """
    written = []
    work_dir = Path(work_dir)
    root = work_dir.resolve()
    for relative_path, location in source_set.files.items():
        target = work_dir.joinpath(*relative_path.split("/"))
        if not target.resolve().is_relative_to(root):
            raise MaterializationFailed(
                source_set.name,
                relative_path,
                ValueError(f"'{relative_path}' would be written outside {work_dir}"),
            )
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with location.open("rb") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except OSError as e:
            raise MaterializationFailed(source_set.name, relative_path, e) from e
        written.append(target)

    _log_debug(f"Copied {len(written)} files for '{source_set}' into {work_dir}")
    return written


def artifact_path(work_dir: Path, name: str) -> Path:
    return work_dir / f"{name}.png"


class Pipeline:
    """Runs the stage chain for one SourceSet inside a working directory."""

    def __init__(
        self,
        resolver: Optional[ExecutableResolver] = None,
        stages: Sequence[Stage] = DEFAULT_STAGES,
    ):
        """
        Args:
            resolver: Binary resolver (default: BinaryLocator probing the standard paths)
            stages: Ordered stage descriptors (default: the latex-to-PNG chain)

        Raises:
            ValueError: If the stage list is empty or its piping is inconsistent
        """
        if not stages:
            raise ValueError("Pipeline needs at least one stage")
        if stages[-1].pipe_to_next:
            raise ValueError(f"Last stage '{stages[-1].binary}' cannot pipe to a next stage")
        for stage in stages:
            if stage.pipe_to_next and stage.stdout_file:
                raise ValueError(f"Stage '{stage.binary}' cannot both pipe and write to a file")

        self.resolver = resolver if resolver is not None else BinaryLocator()
        self.stages = tuple(stages)

    def run(self, source_set: SourceSet, work_dir: Path) -> Path:
        """
        Materialize sources and run every stage.

        Standard output of segments that don't write to a file is saved to
        _output.log whatever the outcome. On failure the failing stage's
        standard error is saved verbatim to _error.log.

        Returns:
            Path to <name>.png in work_dir

        Raises:
            MaterializationFailed: If sources cannot be copied
            BinaryNotFound: If any stage binary is missing (before anything is spawned)
            CompilationFailed: If a stage exits with a non-zero status
        """
        work_dir = Path(work_dir)
        name = source_set.name

        materialize(source_set, work_dir)

        commands = [
            (stage, stage.command(self.resolver.locate(stage.binary), name))
            for stage in self.stages
        ]

        output = bytearray()
        failure = None
        try:
            for segment in _segments(commands):
                segment_output, failure = self._run_segment(segment, name, work_dir)
                output.extend(segment_output)
                if failure is not None:
                    break
        finally:
            (work_dir / OUTPUT_LOG).write_bytes(bytes(output))

        if failure is not None:
            error_log = work_dir / ERROR_LOG
            error_log.write_bytes(failure.stderr)
            log_stage_failure(
                name,
                failure.stage.binary,
                failure.exit_status,
                failure.stderr.decode("utf-8", errors="replace"),
            )
            raise CompilationFailed(name, failure.exit_status, error_log, failure.stage.binary)

        artifact = artifact_path(work_dir, name)
        _log_success(f"'{name}' compiled into {artifact}")
        return artifact

    def _run_segment(
        self, segment: List[Tuple[Stage, List[str]]], name: str, work_dir: Path
    ) -> Tuple[bytes, Optional[_StageResult]]:
        """
        Run a group of piped stages.

        Returns:
            Captured stdout of the last stage (empty if it writes to a file) and
            the failing stage result, if any
        """
        last_stage = segment[-1][0]
        output_name = last_stage.output_name(name)
        log_stage_command(name, work_dir, _describe(segment, output_name))

        processes: List[subprocess.Popen] = []
        results: List[_StageResult] = []

        with ExitStack() as stack:
            sink = None
            if output_name is not None:
                sink = stack.enter_context(open(work_dir / output_name, "wb"))

            stderr_files = []
            stdin = subprocess.DEVNULL
            for index, (stage, command) in enumerate(segment):
                is_last = index == len(segment) - 1
                stdout = sink if (is_last and sink is not None) else subprocess.PIPE
                stderr_file = stack.enter_context(tempfile.TemporaryFile())

                try:
                    process = subprocess.Popen(
                        command,
                        cwd=work_dir,
                        stdin=stdin,
                        stdout=stdout,
                        stderr=stderr_file,
                    )
                except OSError as e:
                    _abort(processes)
                    return b"", _StageResult(stage, CANNOT_EXECUTE, f"{e}\n".encode("utf-8"))

                # Parent drops its copy so upstream sees SIGPIPE if downstream exits early
                if processes:
                    processes[-1].stdout.close()
                processes.append(process)
                stderr_files.append(stderr_file)
                stdin = process.stdout

            captured, _ = processes[-1].communicate()
            for process in processes[:-1]:
                process.wait()

            for (stage, _command), process, stderr_file in zip(segment, processes, stderr_files):
                stderr_file.seek(0)
                results.append(_StageResult(stage, process.returncode, stderr_file.read()))

        return captured or b"", _first_failure(results)


def _segments(commands: List[Tuple[Stage, List[str]]]) -> List[List[Tuple[Stage, List[str]]]]:
    """Split the command list at every stage that doesn't pipe to the next."""
    segments = []
    current = []
    for stage, command in commands:
        current.append((stage, command))
        if not stage.pipe_to_next:
            segments.append(current)
            current = []
    return segments


def _first_failure(results: List[_StageResult]) -> Optional[_StageResult]:
    """
    Pick the stage to blame in a segment.

    Upstream stages killed by SIGPIPE only died because a later stage exited,
    so they are blamed only when nothing else failed.
    """
    sigpipe = -getattr(signal, "SIGPIPE", 13)
    failed = [r for r in results if r.exit_status != 0]
    for result in failed:
        if result.exit_status != sigpipe:
            return result
    return failed[0] if failed else None


def _abort(processes: List[subprocess.Popen]) -> None:
    for process in processes:
        if process.stdout:
            process.stdout.close()
        process.kill()
        process.wait()


def _describe(segment: List[Tuple[Stage, List[str]]], output_name: Optional[str]) -> str:
    text = " | ".join(shlex.join(command) for _stage, command in segment)
    if output_name is not None:
        text += f" > {shlex.quote(output_name)}"
    return text
