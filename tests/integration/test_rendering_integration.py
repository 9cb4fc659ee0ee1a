"""
Integration tests for the rendering context - runs the real latex-to-PNG toolchain.
"""

import shutil

import pytest

from texraster.contexts.building.builder import run_build
from texraster.contexts.building.config import BuildConfig
from texraster.contexts.rendering.binaries import BinaryLocator
from texraster.contexts.rendering.cache import CompilationCache
from texraster.contexts.rendering.exceptions import CompilationFailed
from texraster.contexts.rendering.pipeline import DEFAULT_STAGES

TOOLCHAIN = [stage.binary for stage in DEFAULT_STAGES]
TOOLCHAIN_AVAILABLE = all(shutil.which(binary) for binary in TOOLCHAIN)
skip_if_no_toolchain = pytest.mark.skipif(
    not TOOLCHAIN_AVAILABLE,
    reason="latex, dvips, ghostscript and netpbm must all be installed",
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def latex_sources(tmp_path):
    root = tmp_path / "latex"
    root.mkdir()
    (root / "hello.tex").write_text(
        r"""
\documentclass{article}
\usepackage{rasterpreview}
\begin{document}
Hello, $E = mc^2$
\end{document}
"""
    )
    (root / "broken.tex").write_text(
        r"""
\documentclass{article}
\begin{document}
This has an \undefinedcommand{test} that should fail.
\end{document}
"""
    )
    return root


@pytest.mark.integration
def test_locator_finds_a_shell():
    assert BinaryLocator().locate("sh").is_file()


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_toolchain
def test_compile_to_png(latex_sources, tmp_path):
    cache = CompilationCache(
        tmp_path / "latex-temp", latex_sources, closures=["/rasterpreview.sty"]
    )

    artifact = cache.compile("hello.tex")

    assert artifact.exists()
    assert artifact.read_bytes().startswith(PNG_SIGNATURE)
    assert (artifact.parent / "_output.log").exists()
    assert not (artifact.parent / "_error.log").exists()


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_toolchain
def test_compile_with_intentional_error(latex_sources, tmp_path):
    cache = CompilationCache(tmp_path / "latex-temp", latex_sources)

    with pytest.raises(CompilationFailed) as exc_info:
        cache.compile("broken.tex")

    assert exc_info.value.stage == "latex"
    assert exc_info.value.error_log.exists()
    assert "Undefined control sequence" in (
        exc_info.value.error_log.parent / "_output.log"
    ).read_text(errors="replace")


@pytest.mark.integration
@pytest.mark.latex
@skip_if_no_toolchain
def test_build_copies_png_to_output(latex_sources, tmp_path):
    config = BuildConfig(
        sources_dir=latex_sources,
        output_dir=tmp_path / "site",
        temp_dir=tmp_path / "latex-temp",
        sources=["hello.tex", "broken.tex"],
        closures=["/rasterpreview.sty"],
        events_file=tmp_path / "events.jsonl",
    )

    report = run_build(config)

    assert list(report.compiled) == ["hello"]
    assert "broken" in report.failures
    assert (tmp_path / "site" / "hello.png").read_bytes().startswith(PNG_SIGNATURE)
