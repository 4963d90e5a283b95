"""Formula normalization and cache keys."""

from __future__ import annotations

import hashlib
import re
from enum import Enum

# Bump whenever the embedding template or the asset format changes.
FORMAT_VERSION = "texmirror-math-1"

_HSPACE_RE = re.compile(r"[ \t]+")


class MathMode(str, Enum):
    INLINE = "inline"
    DISPLAY = "display"
    MATHPAR = "mathpar"


def normalize_source(source: str) -> str:
    """Drop formatting noise that cannot change the typeset result.

    Line breaks are kept: inside math a ``%`` comment runs to the end of the line.
    """
    lines = source.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lines = [_HSPACE_RE.sub(" ", line).strip() for line in lines]
    return "\n".join(line for line in lines if line)


def fingerprint(source: str, mode: MathMode, *, preamble: str = "", toolchain: str = "") -> str:
    hasher = hashlib.sha256()
    for part in (FORMAT_VERSION, toolchain, preamble, mode.value, normalize_source(source)):
        data = part.encode("utf-8")
        hasher.update(f"{len(data)}:".encode("ascii"))
        hasher.update(data)
    return hasher.hexdigest()
