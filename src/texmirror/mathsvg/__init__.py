"""Formula rendering: fingerprints, the persistent cache and the external toolchain."""

from .cache import DirectoryCache, Geometry, MathAsset, MathCache, MemoryCache
from .fingerprint import MathMode, fingerprint, normalize_source
from .renderer import MathRenderer, RenderReport
from .toolchain import RenderJob, RenderState, Toolchain

__all__ = [
    "DirectoryCache",
    "Geometry",
    "MathAsset",
    "MathCache",
    "MemoryCache",
    "MathMode",
    "fingerprint",
    "normalize_source",
    "MathRenderer",
    "RenderReport",
    "RenderJob",
    "RenderState",
    "Toolchain",
]
