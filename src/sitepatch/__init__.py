"""sitepatch: scoped, sanitizing edits to generated sites, driven by a model chain."""
from __future__ import annotations

from sitepatch.config import SitePatchConfig
from sitepatch.patch.engine import PatchEngine, apply_patch
from sitepatch.patch.ops import PatchRequest, PatchResult

__all__ = [
    "SitePatchConfig",
    "PatchEngine",
    "apply_patch",
    "PatchRequest",
    "PatchResult",
]
