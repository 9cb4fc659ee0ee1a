"""
Source Resolution Module

Resolves a main LaTeX document plus its closures (auxiliary files, bundled
resources or whole directories) into a SourceSet: an immutable mapping from
the relative path each file gets inside the working directory to the location
its bytes are read from.

References are resolved in two ways:
- "figs/logo.eps", "styles/" - relative to the sources root
- "/preview.sty"             - bundled with texraster itself (texraster.resources)
"""

from dataclasses import dataclass
from importlib.resources import files as resource_files
from importlib.resources.abc import Traversable
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Tuple

from texraster.contexts.rendering.exceptions import MissingSourceFile
from texraster.contexts.rendering.logger import log_sources_resolved

RESOURCE_PACKAGE = "texraster.resources"


@dataclass(frozen=True)
class SourceSet:
    """
    Files needed to compile one document.

    Attributes:
        name: Document name (main reference without directory or extension)
        files: Read-only mapping of relative output path to content location
    """

    name: str
    files: Mapping[str, Traversable]

    def __str__(self) -> str:
        return self.name

    def __len__(self) -> int:
        return len(self.files)


def document_name(reference: str) -> str:
    """
    Derive the document name from a reference.

    Examples:
        >>> document_name("slides/diagram.tex")
        'diagram'
        >>> document_name("/bundled/logo.tex")
        'logo'
    """
    name = PurePosixPath(reference.replace("\\", "/")).stem
    if not name:
        raise ValueError(f"Reference '{reference}' does not name a document")
    return check_document_name(name)


def check_document_name(name: str) -> str:
    """
    Reject names that do not map to exactly one directory below a temp root.

    Raises:
        ValueError: If the name is empty, "." or "..", or contains a separator
    """
    if not name or name in (".", "..") or any(c in name for c in ("/", "\\", "\0")):
        raise ValueError(f"'{name}' is not a valid document name")
    return name


def is_bundled(reference: str) -> bool:
    """References starting with a path separator point at texraster's own resources."""
    return reference.startswith("/")


def resolve_sources(
    sources_root: Path, reference: str, closures: Iterable[str] = ()
) -> SourceSet:
    """
    Resolve a main document and its closures into a SourceSet.

    The main document is added first, then closures in the given order; when two
    references produce the same relative path, the later one wins.

    Args:
        sources_root: Directory that filesystem references are relative to (must exist)
        reference: Main document reference (e.g., "diagram.tex")
        closures: Additional references (files, bundled resources or directories)

    Returns:
        SourceSet named after the main document

    Raises:
        ValueError: If sources_root is not a directory, reference is empty, or a
            reference climbs out of its root with ".."
        MissingSourceFile: If any reference does not exist
    """
    if sources_root is None or not Path(sources_root).is_dir():
        raise ValueError(f"Directory '{sources_root}' doesn't exist")
    if not reference:
        raise ValueError("Empty name of source is not allowed")

    sources_root = Path(sources_root)
    name = document_name(reference)

    entries: Dict[str, Traversable] = {}
    for ref in (reference, *closures):
        if not ref:
            raise ValueError(f"Empty closure reference for '{name}'")
        entries.update(_expand(sources_root, ref))

    log_sources_resolved(name, entries)
    return SourceSet(name=name, files=MappingProxyType(entries))


def _expand(sources_root: Path, reference: str) -> Iterator[Tuple[str, Traversable]]:
    """Yield (relative path, location) pairs for one reference."""
    location, key = _locate(sources_root, reference)

    if location.is_dir():
        yield from _walk(location)
    else:
        yield key, location


def _locate(sources_root: Path, reference: str) -> Tuple[Traversable, str]:
    """Find the location of a reference and the key it gets as a single file."""
    if is_bundled(reference):
        parts = [part for part in reference.split("/") if part]
        if ".." in parts:
            raise ValueError(f"Reference '{reference}' points outside the bundled resources")
        location = resource_files(RESOURCE_PACKAGE).joinpath(*parts)
        if not parts or not (location.is_file() or location.is_dir()):
            raise MissingSourceFile(reference, f"{RESOURCE_PACKAGE}:{reference}")
        return location, parts[-1]

    key = _relative_key(reference)
    location = sources_root / key
    if not location.exists():
        raise MissingSourceFile(reference, location)
    return location, key


def _relative_key(reference: str) -> str:
    """Normalize a filesystem reference; it must stay below the sources root."""
    path = PurePosixPath(reference.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Reference '{reference}' points outside the sources directory")
    return path.as_posix()


def _walk(directory: Traversable, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[str, Traversable]]:
    """
    Recursively list non-hidden files below a directory.

    Any file or directory whose name starts with "." is skipped together with
    everything beneath it. Keys are relative to the directory being walked.
    """
    for child in sorted(directory.iterdir(), key=lambda c: c.name):
        if child.name.startswith("."):
            continue
        if child.is_dir():
            yield from _walk(child, prefix + (child.name,))
        elif child.is_file():
            yield "/".join(prefix + (child.name,)), child
