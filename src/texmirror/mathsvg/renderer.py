"""Materialize every formula of a document as an SVG asset."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from texmirror.errors import RenderError
from texmirror.parser.base import DisplayMath, Document, InlineMath, math_nodes

from .cache import MathAsset, MathCache
from .fingerprint import MathMode, fingerprint, normalize_source
from .toolchain import RenderJob, Toolchain

LOG = logging.getLogger("texmirror")


@dataclass(slots=True)
class RenderReport:
    assets: dict[str, MathAsset] = field(default_factory=dict)
    failures: list[RenderError] = field(default_factory=list)
    reused: int = 0
    rendered: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


class MathRenderer:
    """Render each distinct formula at most once per run.

    Formulas are keyed by fingerprint; cache hits are reused as is and the
    remaining fingerprints are rendered concurrently, one temporary
    directory per formula. A failing formula only affects the nodes that
    share its fingerprint.
    """

    def __init__(
        self,
        cache: MathCache,
        toolchain: Toolchain | None = None,
        *,
        preamble: str = "",
        jobs: int | None = None,
        toolchain_tag: str = "",
    ) -> None:
        self.cache = cache
        self.toolchain = toolchain or Toolchain()
        self.preamble = preamble
        self.jobs = max(1, jobs or os.cpu_count() or 1)
        self.toolchain_tag = toolchain_tag

    def fingerprint(self, node: InlineMath | DisplayMath) -> str:
        identity = self.toolchain.identity
        if self.toolchain_tag:
            identity = f"{identity}|{self.toolchain_tag}"
        return fingerprint(node.source, _mode(node), preamble=self.preamble, toolchain=identity)

    def materialize(self, document: Document) -> RenderReport:
        nodes = math_nodes(document)
        placements: list[tuple[InlineMath | DisplayMath, str]] = []
        jobs: dict[str, RenderJob] = {}
        for node in nodes:
            fp = self.fingerprint(node)
            placements.append((node, fp))
            if fp not in jobs:
                jobs[fp] = RenderJob(fingerprint=fp, mode=_mode(node), source=normalize_source(node.source))

        report = RenderReport()
        pending: list[RenderJob] = []
        for fp, job in jobs.items():
            asset = self.cache.get(fp)
            if asset is None:
                pending.append(job)
            else:
                report.assets[fp] = asset
                report.reused += 1

        LOG.info(
            "Formulas: %d node(s), %d distinct, %d cached, %d to render",
            len(nodes),
            len(jobs),
            report.reused,
            len(pending),
        )

        failures: dict[str, RenderError] = {}
        if pending:
            workers = min(self.jobs, len(pending))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self.toolchain.render, job, self.preamble): job for job in pending}
                for future in as_completed(futures):
                    job = futures[future]
                    try:
                        asset = future.result()
                    except RenderError as exc:
                        LOG.error("Formula %r failed at %s stage", job.source, exc.stage.value)
                        failures[job.fingerprint] = exc
                        continue
                    report.assets[job.fingerprint] = asset
                    report.rendered += 1
                    self.cache.put(asset)

        # Report failures in document order, independent of completion order.
        report.failures = [failures[fp] for fp in jobs if fp in failures]

        for node, fp in placements:
            node.asset = report.assets.get(fp)
            node.error = failures.get(fp)
        return report


def _mode(node: InlineMath | DisplayMath) -> MathMode:
    if isinstance(node, InlineMath):
        return MathMode.INLINE
    return MathMode.MATHPAR if node.form == "mathpar" else MathMode.DISPLAY
