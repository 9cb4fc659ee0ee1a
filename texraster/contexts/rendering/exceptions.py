"""Exceptions raised while resolving, locating and compiling documents."""

import sys
from pathlib import Path
from typing import Optional


class TexRasterError(Exception):
    """Base error for all compilation-related failures."""


class MissingSourceFile(TexRasterError):
    """
    A main document or closure reference does not exist.

    Attributes:
        reference: The reference as given (e.g., 'figs/logo.png' or '/preview.sty')
        path: Where it was looked up
    """

    def __init__(self, reference: str, path: Optional[object] = None):
        self.reference = reference
        self.path = path
        message = f"Source '{reference}' not found"
        if path is not None:
            message += f" at {path}"
        super().__init__(message)


class BinaryNotFound(TexRasterError):
    """An external tool could not be located by probing or by the search utility."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Failed to find executable of '{name}'")


class MaterializationFailed(TexRasterError):
    """
    Copying a resolved source into the working directory failed.

    Attributes:
        document_name: Document being materialized
        relative_path: Entry that failed to copy
        original_error: The underlying OSError
    """

    def __init__(
        self,
        document_name: str,
        relative_path: str,
        original_error: Optional[Exception] = None,
    ):
        self.document_name = document_name
        self.relative_path = relative_path
        self.original_error = original_error

        parts = [f"Failed to copy '{relative_path}' for '{document_name}'"]
        if original_error:
            parts.append(f"Original error: {original_error}")

        super().__init__("\n".join(parts))


class CompilationFailed(TexRasterError):
    """
    The external pipeline exited with a non-zero status.

    The message points at the error log instead of inlining it, since logs can be large.

    Attributes:
        document_name: Document that failed
        exit_status: Exit status of the failing stage
        error_log: Path to the captured standard error
        stage: Binary name of the failing stage
    """

    def __init__(
        self,
        document_name: str,
        exit_status: int,
        error_log: Path,
        stage: Optional[str] = None,
    ):
        self.document_name = document_name
        self.exit_status = exit_status
        self.error_log = Path(error_log)
        self.stage = stage

        where = f" at stage '{stage}'" if stage else ""
        super().__init__(
            f"Failed in '{document_name}'{where} with code #{exit_status}, "
            f"see {self.error_log} for more details"
        )

    @property
    def error_text(self) -> str:
        """Content of the error log, or an empty string if it is gone."""
        if not self.error_log.exists():
            return ""
        return self.error_log.read_text(encoding="utf-8", errors="replace")


class UnsupportedPlatform(TexRasterError):
    """The toolchain pipeline cannot run on this operating system."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform
        super().__init__(f"Sorry, texraster cannot run on '{platform}'")
