"""
Unit tests for the stage pipeline.

Stages run small /bin/sh scripts instead of the real toolchain.
"""

from pathlib import Path
from types import MappingProxyType

import pytest

from texraster.contexts.rendering.binaries import FixedResolver
from texraster.contexts.rendering.exceptions import (
    BinaryNotFound,
    CompilationFailed,
    MaterializationFailed,
)
from texraster.contexts.rendering.pipeline import (
    DEFAULT_STAGES,
    ERROR_LOG,
    OUTPUT_LOG,
    Pipeline,
    Stage,
    materialize,
)
from texraster.contexts.rendering.sources import SourceSet, resolve_sources


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work" / "diagram"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def source_set(sources_root):
    return resolve_sources(sources_root, "diagram.tex", ["macros.tex", "figs/"])


@pytest.mark.unit
class TestMaterialize:
    """Tests for materialize()."""

    def test_copies_every_entry(self, source_set, work_dir):
        written = materialize(source_set, work_dir)

        assert len(written) == len(source_set)
        assert (work_dir / "diagram.tex").read_text().startswith("\\documentclass")
        assert (work_dir / "macros.tex").exists()
        assert (work_dir / "logos" / "brand.eps").read_text() == "%!PS\n"

    def test_missing_location_fails(self, tmp_path, work_dir):
        broken = SourceSet(
            name="diagram",
            files=MappingProxyType({"gone.tex": tmp_path / "deleted.tex"}),
        )

        with pytest.raises(MaterializationFailed) as exc_info:
            materialize(broken, work_dir)
        assert exc_info.value.relative_path == "gone.tex"
        assert isinstance(exc_info.value.original_error, OSError)

    def test_entry_outside_work_dir_rejected(self, sources_root, work_dir):
        escaping = SourceSet(
            name="diagram",
            files=MappingProxyType({"../shared.sty": sources_root / "macros.tex"}),
        )

        with pytest.raises(MaterializationFailed) as exc_info:
            materialize(escaping, work_dir)
        assert exc_info.value.relative_path == "../shared.sty"
        assert not (work_dir.parent / "shared.sty").exists()


@pytest.mark.unit
class TestStage:
    """Tests for Stage descriptors."""

    def test_command_substitutes_name(self):
        stage = Stage("dvips", ("-o", "{name}.ps", "{name}.dvi"))
        assert stage.command(Path("/usr/bin/dvips"), "diagram") == [
            "/usr/bin/dvips",
            "-o",
            "diagram.ps",
            "diagram.dvi",
        ]

    def test_default_chain(self):
        assert [s.binary for s in DEFAULT_STAGES] == [
            "latex",
            "dvips",
            "gs",
            "pnmalias",
            "pnmcrop",
            "pnmscale",
            "pnmtopng",
        ]
        assert "-r300" in DEFAULT_STAGES[2].args
        assert DEFAULT_STAGES[5].args == ("0.5",)
        assert DEFAULT_STAGES[-1].output_name("diagram") == "diagram.png"
        assert [s.pipe_to_next for s in DEFAULT_STAGES] == [
            False, False, True, True, True, True, False
        ]

    def test_inconsistent_stages_rejected(self):
        with pytest.raises(ValueError):
            Pipeline(FixedResolver({}), stages=[])
        with pytest.raises(ValueError):
            Pipeline(FixedResolver({}), stages=[Stage("gs", pipe_to_next=True)])
        with pytest.raises(ValueError):
            Pipeline(
                FixedResolver({}),
                stages=[Stage("gs", pipe_to_next=True, stdout_file="x"), Stage("cat")],
            )


@pytest.mark.unit
class TestPipelineRun:
    """Tests for Pipeline.run() with fake tools."""

    def test_success_writes_artifact_and_output_log(self, make_tool, source_set, work_dir):
        typeset = make_tool("typeset", 'echo "typesetting $1"; cp "$1" intermediate.txt')
        emit = make_tool("emit", 'cat "$1"')
        shout = make_tool("shout", "tr a-z A-Z")
        resolver = FixedResolver({"typeset": typeset, "emit": emit, "shout": shout})
        stages = [
            Stage("typeset", ("{name}.tex",)),
            Stage("emit", ("macros.tex",), pipe_to_next=True),
            Stage("shout", stdout_file="{name}.png"),
        ]

        artifact = Pipeline(resolver, stages).run(source_set, work_dir)

        assert artifact == work_dir / "diagram.png"
        assert artifact.read_text() == "\\NEWCOMMAND{\\X}{Y}\n"
        assert (work_dir / "intermediate.txt").exists()
        assert (work_dir / OUTPUT_LOG).read_text() == "typesetting diagram.tex\n"
        assert not (work_dir / ERROR_LOG).exists()

    def test_failure_surfaces_error_log(self, make_tool, source_set, work_dir):
        typeset = make_tool("typeset", 'echo "partial output"; printf "! Undefined control sequence.\\n" >&2; exit 3')
        resolver = FixedResolver({"typeset": typeset})

        with pytest.raises(CompilationFailed) as exc_info:
            Pipeline(resolver, [Stage("typeset", ("{name}.tex",))]).run(source_set, work_dir)

        error = exc_info.value
        assert error.document_name == "diagram"
        assert error.exit_status == 3
        assert error.stage == "typeset"
        assert error.error_log == work_dir / ERROR_LOG
        assert error.error_log.read_text() == "! Undefined control sequence.\n"
        assert error.error_text == "! Undefined control sequence.\n"
        assert str(error.error_log) in str(error)
        assert "Undefined control sequence" not in str(error)
        assert (work_dir / OUTPUT_LOG).read_text() == "partial output\n"

    def test_failure_stops_later_stages(self, make_tool, source_set, work_dir):
        fail = make_tool("fail", "exit 1")
        touch = make_tool("touch-marker", "touch ran.marker")
        resolver = FixedResolver({"fail": fail, "touch-marker": touch})

        with pytest.raises(CompilationFailed):
            Pipeline(resolver, [Stage("fail"), Stage("touch-marker")]).run(source_set, work_dir)

        assert not (work_dir / "ran.marker").exists()

    def test_failure_inside_pipe_is_attributed_to_its_stage(self, make_tool, source_set, work_dir):
        emit = make_tool("emit", 'echo "pixels"')
        crop = make_tool("crop", 'cat > /dev/null; echo "crop: bad image" >&2; exit 4')
        encode = make_tool("encode", "cat")
        resolver = FixedResolver({"emit": emit, "crop": crop, "encode": encode})
        stages = [
            Stage("emit", pipe_to_next=True),
            Stage("crop", pipe_to_next=True),
            Stage("encode", stdout_file="{name}.png"),
        ]

        with pytest.raises(CompilationFailed) as exc_info:
            Pipeline(resolver, stages).run(source_set, work_dir)

        assert exc_info.value.stage == "crop"
        assert exc_info.value.exit_status == 4
        assert exc_info.value.error_text == "crop: bad image\n"

    def test_missing_binary_fails_before_spawning(self, make_tool, source_set, work_dir):
        touch = make_tool("touch-marker", "touch ran.marker")
        resolver = FixedResolver({"touch-marker": touch})

        with pytest.raises(BinaryNotFound):
            Pipeline(resolver, [Stage("touch-marker"), Stage("pnmtopng")]).run(
                source_set, work_dir
            )

        assert not (work_dir / "ran.marker").exists()
        assert not (work_dir / OUTPUT_LOG).exists()

    def test_unexecutable_binary_is_a_compilation_failure(self, tmp_path, source_set, work_dir):
        not_executable = tmp_path / "plain.txt"
        not_executable.write_text("not a program")
        resolver = FixedResolver({"latex": not_executable})

        with pytest.raises(CompilationFailed) as exc_info:
            Pipeline(resolver, [Stage("latex")]).run(source_set, work_dir)

        assert exc_info.value.stage == "latex"
        assert exc_info.value.error_text
