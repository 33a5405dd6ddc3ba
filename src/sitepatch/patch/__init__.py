from sitepatch.patch.css import upsert_rule
from sitepatch.patch.engine import PatchEngine, apply_patch
from sitepatch.patch.ops import (
    AppliedChange,
    OpKind,
    PatchRequest,
    PatchResult,
    parse_operation,
)
from sitepatch.patch.scope import ProtectedSet, compute_protected, compute_roots

__all__ = [
    "PatchEngine",
    "apply_patch",
    "PatchRequest",
    "PatchResult",
    "AppliedChange",
    "OpKind",
    "parse_operation",
    "upsert_rule",
    "ProtectedSet",
    "compute_roots",
    "compute_protected",
]
