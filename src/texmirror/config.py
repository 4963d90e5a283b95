"""Compiler settings collected from the command line and the environment."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from texmirror.mathsvg.toolchain import Toolchain
from texmirror.parser.directives import IGNORE_MARKER, Preprocessor

DEFAULT_CACHE_DIRNAME = ".texmirror-cache"


@dataclass(slots=True)
class CompilerConfig:
    cache_dir: Path | None = None
    jobs: int | None = None
    timeout: float | None = None
    latex_command: str = "pdflatex"
    crop_command: str = "pdfcrop"
    trace_command: str = "pdf2svg"
    toolchain_tag: str = ""
    ignore_marker: str = IGNORE_MARKER

    def __post_init__(self) -> None:
        if self.jobs is not None and self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        Preprocessor(self.ignore_marker)  # rejects empty or multi-word markers

    def cache_dir_for(self, document_path: Path) -> Path:
        """The configured cache directory, else ``.texmirror-cache`` beside the document."""
        if self.cache_dir is not None:
            return Path(self.cache_dir)
        return Path(document_path).resolve().parent / DEFAULT_CACHE_DIRNAME

    def toolchain(self) -> Toolchain:
        return Toolchain(
            latex_command=self.latex_command,
            crop_command=self.crop_command,
            trace_command=self.trace_command,
            timeout=self.timeout,
        )
