"""
Build Configuration

Defaults come from the environment (.env is loaded via python-dotenv); a YAML
build file, loaded with OmegaConf, overrides them, and explicit overrides (e.g.
from the command line) win over both. OmegaConf interpolation is resolved, so a
build file may say `events_file: ${temp_dir}/events.jsonl`.

Example texraster.yaml:

    sources_dir: src/main/latex
    output_dir: target/site/latex
    temp_dir: target/latex-temp
    sources:
      - diagram.tex
      - formula.tex
    closures:
      - /rasterpreview.sty
      - figs/
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()
SOURCES_DIR = Path(os.getenv("TEXRASTER_SOURCES_DIR", "src/main/latex"))
OUTPUT_DIR = Path(os.getenv("TEXRASTER_OUTPUT_DIR", "target/site/latex"))
TEMP_DIR = Path(os.getenv("TEXRASTER_TEMP_DIR", "target/latex-temp"))
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
SKIP = os.getenv("TEXRASTER_SKIP", "false").lower() == "true"
COMPILE_EVENTS_FILE = os.getenv("COMPILE_EVENTS_FILE")

EVENTS_FILE_NAME = "compile_events.jsonl"


@dataclass
class BuildConfig:
    """
    Parameters of one build.

    Attributes:
        sources_dir: Directory source references are relative to (must exist)
        output_dir: Directory compiled PNGs are copied to (created if absent)
        temp_dir: Root of the per-document working directories (the cache)
        sources: Main document references to compile
        closures: References copied alongside every document
        skip: Do nothing at all
        jobs: Number of documents compiled concurrently
        logs_dir: Directory for session logs
        events_file: JSON Lines compile event log (default: <temp_dir>/compile_events.jsonl)
    """

    sources_dir: Path = SOURCES_DIR
    output_dir: Path = OUTPUT_DIR
    temp_dir: Path = TEMP_DIR
    sources: List[str] = field(default_factory=list)
    closures: List[str] = field(default_factory=list)
    skip: bool = SKIP
    jobs: int = 1
    logs_dir: Path = LOGS_PATH
    events_file: Optional[Path] = None

    def __post_init__(self):
        self.sources_dir = Path(self.sources_dir)
        self.output_dir = Path(self.output_dir)
        self.temp_dir = Path(self.temp_dir)
        self.logs_dir = Path(self.logs_dir)
        self.sources = [str(s) for s in self.sources]
        self.closures = [str(c) for c in self.closures]
        if self.events_file is None:
            self.events_file = (
                Path(COMPILE_EVENTS_FILE)
                if COMPILE_EVENTS_FILE
                else self.temp_dir / EVENTS_FILE_NAME
            )
        else:
            self.events_file = Path(self.events_file)

        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got: {self.jobs}")


def config_keys() -> List[str]:
    return [f.name for f in fields(BuildConfig)]


def load_build_config(
    config_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None
) -> BuildConfig:
    """
    Load a build configuration.

    Args:
        config_path: Optional YAML build file
        overrides: Values that take precedence over the file (None values are ignored)

    Returns:
        BuildConfig with environment defaults, file values and overrides applied

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If the file or overrides contain unknown keys
    """
    known = set(config_keys())
    layers = []

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Build config not found: {config_path}")
        file_conf = OmegaConf.load(config_path)
        if not isinstance(file_conf, DictConfig):
            raise ValueError(f"Build config must be a mapping: {config_path}")
        unknown = set(file_conf.keys()) - known
        if unknown:
            raise ValueError(f"Unknown keys in {config_path}: {sorted(unknown)}")
        layers.append(file_conf)

    if overrides:
        cleaned = {
            key: str(value) if isinstance(value, Path) else value
            for key, value in overrides.items()
            if value is not None
        }
        unknown = set(cleaned) - known
        if unknown:
            raise ValueError(f"Unknown config overrides: {sorted(unknown)}")
        layers.append(OmegaConf.create(cleaned))

    defaults = BuildConfig()
    base = OmegaConf.create(
        {
            "sources_dir": str(defaults.sources_dir),
            "output_dir": str(defaults.output_dir),
            "temp_dir": str(defaults.temp_dir),
            "sources": [],
            "closures": [],
            "skip": defaults.skip,
            "jobs": defaults.jobs,
            "logs_dir": str(defaults.logs_dir),
            "events_file": None,
        }
    )

    merged = OmegaConf.to_container(OmegaConf.merge(base, *layers), resolve=True)
    return BuildConfig(**merged)
