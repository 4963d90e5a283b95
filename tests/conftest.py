import logging
import threading
from pathlib import Path

import pytest

from texmirror.errors import RenderError, RenderStage
from texmirror.mathsvg.cache import Geometry, MathAsset
from texmirror.mathsvg.toolchain import RenderJob, RenderState, Toolchain

BIB = r"""
@article{knuth84,
  author = {Donald E. Knuth},
  title = {Literate Programming},
  journal = {The Computer Journal},
  volume = 27,
  number = 2,
  pages = {97--111},
  year = 1984,
}

@book{lamport94,
  author = {Leslie Lamport},
  title = {{\LaTeX}: A Document Preparation System},
  year = {1994},
}
"""


class FakeToolchain(Toolchain):
    """Stands in for pdflatex/pdfcrop/pdf2svg; renders a tiny deterministic SVG."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        super().__init__()
        self.fail_on = set(fail_on or ())
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def render(self, job: RenderJob, preamble: str = "") -> MathAsset:
        with self._lock:
            self.calls.append(job.source)
        if job.source in self.fail_on:
            job.state = RenderState.FAILED
            job.failed_stage = RenderStage.TYPESET
            raise RenderError(RenderStage.TYPESET, job.source, "! Undefined control sequence.")
        job.state = RenderState.DONE
        svg = f'<svg xmlns="http://www.w3.org/2000/svg"><!-- {job.mode.value}: {job.source} --></svg>'
        return MathAsset(
            fingerprint=job.fingerprint,
            mode=job.mode,
            source=job.source,
            svg=svg.encode("utf-8"),
            geometry=Geometry(width_pt=20.0, height_pt=8.0, depth_pt=2.0),
        )


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def bib_path(tmp_path: Path) -> Path:
    path = tmp_path / "refs.bib"
    path.write_text(BIB, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _restore_texmirror_logger():
    logger = logging.getLogger("texmirror")
    level, propagate, handlers = logger.level, logger.propagate, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.propagate = propagate
    logger.handlers[:] = handlers


@pytest.fixture
def toolchain_factory():
    return FakeToolchain
