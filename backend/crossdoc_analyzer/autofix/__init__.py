"""
Auto-fix

Patch generation per strategy, change tracking and the resolver that
applies selected fixes through a document store.
"""

from .patches import (
    ALIGN_TO_PROTOCOL,
    ALIGN_TO_SAP,
    BALANCED,
    STRATEGIES,
    fix_primary_endpoint_drift,
    fix_test_mismatch,
    generate_patches,
)
from .changelog import ChangeLogEntry, describe_changes, track_change, validate_patch
from .resolver import AutoFixResolver, AutoFixResult, BlockStore, BlockUpdate, PatchOutcome

__all__ = [
    "ALIGN_TO_PROTOCOL",
    "ALIGN_TO_SAP",
    "BALANCED",
    "STRATEGIES",
    "fix_primary_endpoint_drift",
    "fix_test_mismatch",
    "generate_patches",
    "ChangeLogEntry",
    "describe_changes",
    "track_change",
    "validate_patch",
    "AutoFixResolver",
    "AutoFixResult",
    "BlockStore",
    "BlockUpdate",
    "PatchOutcome",
]
