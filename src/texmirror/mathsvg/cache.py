"""Persistent, content-addressed storage for rendered formulas.

An entry lives in ``<root>/<fp[:2]>/<fp>/`` and holds ``formula.svg`` plus
``meta.json``. Entries are assembled in a scratch directory next to the
cache and renamed into place, so a partially written entry is never visible.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .fingerprint import MathMode

LOG = logging.getLogger("texmirror")

META_FORMAT = 1
SVG_NAME = "formula.svg"
META_NAME = "meta.json"


@dataclass(frozen=True, slots=True)
class Geometry:
    width_pt: float
    height_pt: float
    depth_pt: float = 0.0


@dataclass(frozen=True, slots=True)
class MathAsset:
    fingerprint: str
    mode: MathMode
    source: str
    svg: bytes
    geometry: Geometry

    @property
    def filename(self) -> str:
        return f"{self.fingerprint}.svg"

    def metadata(self) -> dict[str, object]:
        return {
            "format": META_FORMAT,
            "fingerprint": self.fingerprint,
            "mode": self.mode.value,
            "source": self.source,
            "width_pt": self.geometry.width_pt,
            "height_pt": self.geometry.height_pt,
            "depth_pt": self.geometry.depth_pt,
        }


class MathCache(Protocol):
    def open(self) -> None:  # pragma: no cover - structural protocol
        """Prepare the cache for use."""

    def get(self, fingerprint: str) -> MathAsset | None:  # pragma: no cover - structural protocol
        """Return the stored asset, or None on a miss."""

    def put(self, asset: MathAsset) -> None:  # pragma: no cover - structural protocol
        """Store a freshly rendered asset."""

    def close(self) -> None:  # pragma: no cover - structural protocol
        """Flush and release the cache."""


class _CacheBase:
    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.stores = 0

    def open(self) -> None:
        pass

    def close(self) -> None:
        LOG.info("Math cache: %d hit(s), %d miss(es), %d stored", self.hits, self.misses, self.stores)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MemoryCache(_CacheBase):
    """Process-local cache, for tests and one-off runs."""

    def __init__(self) -> None:
        super().__init__()
        self.entries: dict[str, MathAsset] = {}

    def get(self, fingerprint: str) -> MathAsset | None:
        asset = self.entries.get(fingerprint)
        if asset is None:
            self.misses += 1
        else:
            self.hits += 1
        return asset

    def put(self, asset: MathAsset) -> None:
        self.entries[asset.fingerprint] = asset
        self.stores += 1


class DirectoryCache(_CacheBase):
    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)
        self.enabled = True

    def entry_dir(self, fingerprint: str) -> Path:
        return self.root / fingerprint[:2] / fingerprint

    def open(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOG.warning("Math cache disabled, cannot create %s: %s", self.root, exc)
            self.enabled = False

    def get(self, fingerprint: str) -> MathAsset | None:
        entry = self.entry_dir(fingerprint)
        if not self.enabled or not entry.is_dir():
            self.misses += 1
            return None
        try:
            asset = _load_entry(entry, fingerprint)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOG.warning("Ignoring unreadable cache entry %s: %s", entry, exc)
            self.misses += 1
            return None
        self.hits += 1
        return asset

    def put(self, asset: MathAsset) -> None:
        if not self.enabled:
            return
        target = self.entry_dir(asset.fingerprint)
        scratch: Path | None = None
        try:
            scratch = Path(tempfile.mkdtemp(prefix=f".incoming-{asset.fingerprint[:12]}-", dir=self.root))
            (scratch / SVG_NAME).write_bytes(asset.svg)
            (scratch / META_NAME).write_text(
                json.dumps(asset.metadata(), indent=2, sort_keys=True) + "\n", encoding="utf-8"
            )
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.exists():
                shutil.rmtree(target)
            os.replace(scratch, target)
            scratch = None
        except OSError as exc:
            LOG.warning("Could not store formula %s in the math cache: %s", asset.fingerprint[:12], exc)
            return
        finally:
            if scratch is not None:
                shutil.rmtree(scratch, ignore_errors=True)
        self.stores += 1


def _load_entry(entry: Path, fingerprint: str) -> MathAsset:
    meta = json.loads((entry / META_NAME).read_text(encoding="utf-8"))
    if meta["format"] != META_FORMAT or meta["fingerprint"] != fingerprint:
        raise ValueError("metadata does not match the entry")
    svg = (entry / SVG_NAME).read_bytes()
    if not svg:
        raise ValueError("empty svg")
    return MathAsset(
        fingerprint=fingerprint,
        mode=MathMode(meta["mode"]),
        source=meta["source"],
        svg=svg,
        geometry=Geometry(
            width_pt=float(meta["width_pt"]),
            height_pt=float(meta["height_pt"]),
            depth_pt=float(meta["depth_pt"]),
        ),
    )
