"""Typeset -> crop -> trace pipeline for a single formula."""

from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import fitz  # type: ignore

from texmirror.errors import RenderError, RenderStage

from .cache import Geometry, MathAsset
from .fingerprint import MathMode

LOG = logging.getLogger("texmirror")

TEX_NAME = "formula.tex"
PDF_NAME = "formula.pdf"
CROPPED_NAME = "formula-crop.pdf"
SVG_NAME = "formula.svg"
SIZE_NAME = "formula.size"

_LOG_TAIL_LINES = 20


class RenderState(str, Enum):
    PENDING = "pending"
    TYPESETTING = "typesetting"
    CROPPING = "cropping"
    TRACING = "tracing"
    DONE = "done"
    FAILED = "failed"


# Stage to blame for a file system error raised while a job is in a given state.
_STAGE_BY_STATE = {
    RenderState.PENDING: RenderStage.TYPESET,
    RenderState.TYPESETTING: RenderStage.TYPESET,
    RenderState.CROPPING: RenderStage.CROP,
    RenderState.TRACING: RenderStage.TRACE,
}


@dataclass(slots=True)
class RenderJob:
    fingerprint: str
    mode: MathMode
    source: str
    state: RenderState = RenderState.PENDING
    failed_stage: RenderStage | None = None


def standalone_source(preamble: str, source: str, mode: MathMode) -> str:
    """Wrap a formula in a minimal document that also reports its box size.

    The formula is set in a save box; width, height and depth of the box are
    written to ``formula.size`` so inline formulas can sit on the text baseline.
    """
    if mode == MathMode.MATHPAR:
        # mathpar needs a paragraph box; mathpartir must be loaded by the preamble
        math = "\\begin{minipage}{\\textwidth}\\begin{mathpar}\n" + source + "\n\\end{mathpar}\\end{minipage}"
    elif mode == MathMode.DISPLAY:
        math = "$\\displaystyle " + source + "\n$"
    else:
        math = "$" + source + "\n$"
    lines = [
        "\\documentclass{minimal}",
        preamble,
        "\\newsavebox{\\texmirrorbox}",
        "\\newwrite\\texmirrorsize",
        "\\begin{document}",
        "\\sbox{\\texmirrorbox}{" + math + "}",
        "\\usebox{\\texmirrorbox}",
        "\\immediate\\openout\\texmirrorsize=" + SIZE_NAME,
        "\\immediate\\write\\texmirrorsize{\\the\\wd\\texmirrorbox,\\the\\ht\\texmirrorbox,\\the\\dp\\texmirrorbox}",
        "\\immediate\\closeout\\texmirrorsize",
        "\\end{document}",
    ]
    return "\n".join(line for line in lines if line) + "\n"


@dataclass(slots=True)
class Toolchain:
    """Runs pdflatex, pdfcrop and pdf2svg as opaque subprocesses."""

    latex_command: str = "pdflatex"
    crop_command: str = "pdfcrop"
    trace_command: str = "pdf2svg"
    timeout: float | None = None

    @property
    def identity(self) -> str:
        return "|".join((self.latex_command, self.crop_command, self.trace_command))

    def render(self, job: RenderJob, preamble: str = "") -> MathAsset:
        try:
            with tempfile.TemporaryDirectory(prefix="texmirror-") as tmp:
                asset = self._render_in(Path(tmp), job, preamble)
        except RenderError as exc:
            job.state = RenderState.FAILED
            job.failed_stage = exc.stage
            raise
        except OSError as exc:
            stage = _STAGE_BY_STATE.get(job.state, RenderStage.TYPESET)
            job.state = RenderState.FAILED
            job.failed_stage = stage
            raise RenderError(stage, job.source, f"file system error: {exc}") from exc
        job.state = RenderState.DONE
        return asset

    def _render_in(self, workdir: Path, job: RenderJob, preamble: str) -> MathAsset:
        job.state = RenderState.TYPESETTING
        pdf, depth_pt = self.typeset(workdir, preamble, job)
        job.state = RenderState.CROPPING
        cropped = self.crop(workdir, pdf, job)
        width_pt, height_pt = self.measure(cropped, job)
        job.state = RenderState.TRACING
        svg = self.trace(workdir, cropped, job)
        return MathAsset(
            fingerprint=job.fingerprint,
            mode=job.mode,
            source=job.source,
            svg=svg,
            geometry=Geometry(width_pt=width_pt, height_pt=height_pt, depth_pt=depth_pt),
        )

    def typeset(self, workdir: Path, preamble: str, job: RenderJob) -> tuple[Path, float]:
        (workdir / TEX_NAME).write_text(standalone_source(preamble, job.source, job.mode), encoding="utf-8")
        self._run(
            RenderStage.TYPESET,
            [*shlex.split(self.latex_command), "-interaction=nonstopmode", "-halt-on-error", TEX_NAME],
            workdir,
            job,
        )
        pdf = self._expect_output(RenderStage.TYPESET, workdir / PDF_NAME, job)
        return pdf, _read_depth(workdir / SIZE_NAME)

    def crop(self, workdir: Path, pdf: Path, job: RenderJob) -> Path:
        self._run(RenderStage.CROP, [*shlex.split(self.crop_command), pdf.name, CROPPED_NAME], workdir, job)
        return self._expect_output(RenderStage.CROP, workdir / CROPPED_NAME, job)

    def measure(self, cropped: Path, job: RenderJob) -> tuple[float, float]:
        try:
            with fitz.open(str(cropped)) as doc:
                rect = doc[0].rect
                return float(rect.width), float(rect.height)
        except Exception as exc:  # PyMuPDF raises its own error types for damaged files
            raise RenderError(RenderStage.CROP, job.source, f"cannot read cropped page: {exc}") from exc

    def trace(self, workdir: Path, cropped: Path, job: RenderJob) -> bytes:
        self._run(RenderStage.TRACE, [*shlex.split(self.trace_command), cropped.name, SVG_NAME], workdir, job)
        svg = self._expect_output(RenderStage.TRACE, workdir / SVG_NAME, job)
        return svg.read_bytes()

    def _run(self, stage: RenderStage, args: list[str], workdir: Path, job: RenderJob) -> None:
        LOG.debug("Running %s in %s", shlex.join(args), workdir)
        try:
            completed = subprocess.run(
                args,
                cwd=workdir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RenderError(
                RenderStage.TIMEOUT, job.source, f"{args[0]} ({stage.value}) did not finish within {self.timeout}s"
            ) from exc
        except OSError as exc:
            raise RenderError(stage, job.source, f"cannot run {args[0]}: {exc}") from exc

        if completed.returncode != 0:
            detail = _error_excerpt(completed.stdout or "")
            raise RenderError(stage, job.source, detail or f"{args[0]} exited with status {completed.returncode}")

    @staticmethod
    def _expect_output(stage: RenderStage, path: Path, job: RenderJob) -> Path:
        if not path.is_file() or path.stat().st_size == 0:
            raise RenderError(stage, job.source, f"expected output {path.name} was not produced")
        return path


def _read_depth(size_file: Path) -> float:
    try:
        _width, _height, depth = size_file.read_text(encoding="utf-8").strip().split(",")
        return float(depth.strip().removesuffix("pt"))
    except (OSError, ValueError):
        LOG.debug("No usable box size in %s", size_file)
        return 0.0


def _error_excerpt(output: str) -> str:
    """Keep the TeX error lines (``! ...`` and the line after), else the tail of the log."""
    lines = output.splitlines()
    picked: list[str] = []
    for idx, line in enumerate(lines):
        if line.startswith("!"):
            picked.extend(lines[idx : idx + 2])
    if not picked:
        picked = lines[-_LOG_TAIL_LINES:]
    return "\n".join(line.rstrip() for line in picked).strip()
