"""
Versioned file storage for form definitions.
"""

from .promotion import (
    DeferredCleanup,
    PromotionMethod,
    PromotionResult,
    copy_into,
    promote,
    rename_or_copy,
)
from .slot import BAD_FORM_SLOT, StorageSlot, VersionedFileStore, safe_name

__all__ = [
    "DeferredCleanup",
    "PromotionMethod",
    "PromotionResult",
    "copy_into",
    "promote",
    "rename_or_copy",
    "BAD_FORM_SLOT",
    "StorageSlot",
    "VersionedFileStore",
    "safe_name",
]
