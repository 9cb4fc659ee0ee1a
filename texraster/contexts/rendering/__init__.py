"""
Rendering Context

Responsibilities:
- Resolves a document and its closures into a SourceSet
- Locates the external toolchain binaries
- Runs the latex-to-PNG stage pipeline in a working directory
- Caches compiled artifacts per document name

Owns: source resolution, binary lookup, external process orchestration, working directories
Never: Parses or modifies LaTeX content
"""

from texraster.contexts.rendering.binaries import (
    BinaryLocator,
    ExecutableResolver,
    FixedResolver,
)
from texraster.contexts.rendering.cache import CacheEntry, CompilationCache
from texraster.contexts.rendering.exceptions import (
    BinaryNotFound,
    CompilationFailed,
    MaterializationFailed,
    MissingSourceFile,
    TexRasterError,
    UnsupportedPlatform,
)
from texraster.contexts.rendering.pipeline import DEFAULT_STAGES, Pipeline, Stage, materialize
from texraster.contexts.rendering.sources import SourceSet, document_name, resolve_sources

__all__ = [
    "BinaryLocator",
    "BinaryNotFound",
    "CacheEntry",
    "CompilationCache",
    "CompilationFailed",
    "DEFAULT_STAGES",
    "ExecutableResolver",
    "FixedResolver",
    "MaterializationFailed",
    "MissingSourceFile",
    "Pipeline",
    "SourceSet",
    "Stage",
    "TexRasterError",
    "UnsupportedPlatform",
    "document_name",
    "materialize",
    "resolve_sources",
]
