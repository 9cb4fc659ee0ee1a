"""Unit tests for the compile_png.py command line (error exits, invalidate)."""

import importlib.util
from pathlib import Path

import pytest
from typer.testing import CliRunner

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "compile_png.py"


@pytest.fixture(scope="module")
def app():
    module_spec = importlib.util.spec_from_file_location("compile_png", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module.app


@pytest.fixture
def runner():
    return CliRunner()


@pytest.mark.unit
class TestConfigErrors:
    """Every command exits 1 with a message when the build file is unusable."""

    @pytest.mark.parametrize(
        "args",
        [
            ["events", "--config"],
            ["invalidate", "diagram", "--config"],
            ["build"],
        ],
    )
    def test_missing_config_file(self, app, runner, tmp_path, args):
        result = runner.invoke(app, [*args, str(tmp_path / "absent.yaml")])

        assert result.exit_code == 1
        assert "Build config not found" in result.output

    def test_unknown_key(self, app, runner, tmp_path):
        config = tmp_path / "texraster.yaml"
        config.write_text("colour: blue\n")

        result = runner.invoke(app, ["events", "--config", str(config)])

        assert result.exit_code == 1
        assert "Unknown keys" in result.output


@pytest.mark.unit
class TestInvalidate:
    """Tests for the invalidate command."""

    @pytest.mark.parametrize("name", ["..", "a/b"])
    def test_bad_name_exits_without_deleting(self, app, runner, tmp_path, name):
        temp_dir = tmp_path / "target" / "latex-temp"
        (temp_dir / "diagram").mkdir(parents=True)

        result = runner.invoke(app, ["invalidate", name, "--temp-dir", str(temp_dir)])

        assert result.exit_code == 1
        assert "not a valid document name" in result.output
        assert (temp_dir / "diagram").is_dir()

    def test_removes_working_directory(self, app, runner, tmp_path):
        temp_dir = tmp_path / "latex-temp"
        (temp_dir / "diagram").mkdir(parents=True)

        result = runner.invoke(app, ["invalidate", "diagram", "--temp-dir", str(temp_dir)])

        assert result.exit_code == 0
        assert not (temp_dir / "diagram").exists()
