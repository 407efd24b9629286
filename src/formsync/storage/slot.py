"""
Versioned file store.

Layout:
    {root}/forms/{safe_name}/
        {safe_name}.xml            primary definition
        {safe_name}.xml.revised    provisional newer definition (optional)
        {safe_name}-media/         form attachments
            .fetch-pending         present while an attachment download is unfinished

A revised file, when present, is always more authoritative than the primary.
Promoting revised over primary is the caller's job once a sync completes.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import StorageIOError
from .promotion import PromotionResult, promote, rename_or_copy


logger = logging.getLogger(__name__)

FORMS_DIR = "forms"
BAD_FORM_SLOT = "_badForm"
REVISED_SUFFIX = ".revised"
MEDIA_PENDING_MARKER = ".fetch-pending"

_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f]')


def safe_name(form_name: str) -> str:
    """Make a form title usable as a directory and file name."""
    name = _UNSAFE_CHARS.sub("_", form_name).strip()
    # Leading dots would hide the slot or escape the forms directory
    name = name.lstrip(".")
    return name or "_"


@dataclass(frozen=True)
class StorageSlot:
    """
    Per-form storage directory.

    Attributes:
        root: Storage root
        name: Filesystem-safe slot name
    """
    root: Path
    name: str

    @property
    def directory(self) -> Path:
        return self.root / FORMS_DIR / self.name

    @property
    def primary_file(self) -> Path:
        return self.directory / f"{self.name}.xml"

    @property
    def revised_file(self) -> Path:
        primary = self.primary_file
        return primary.with_name(primary.name + REVISED_SUFFIX)

    @property
    def media_directory(self) -> Path:
        return self.directory / f"{self.name}-media"

    @property
    def media_pending_marker(self) -> Path:
        return self.media_directory / MEDIA_PENDING_MARKER

    @property
    def is_quarantine(self) -> bool:
        return self.name == BAD_FORM_SLOT

    def primary_exists(self) -> bool:
        return self.primary_file.exists()

    def revised_exists(self) -> bool:
        return self.revised_file.exists()

    def media_fetch_pending(self) -> bool:
        """True if a media fetch was started and never finished."""
        return self.media_pending_marker.exists()

    def authoritative_file(self) -> Path:
        """The revised file if there is one, else the primary."""
        if self.revised_exists():
            return self.revised_file
        return self.primary_file


class VersionedFileStore:
    """
    Resolves storage slots and promotes files into them.
    """

    def __init__(self, root: Path, create_dirs: bool = True):
        """
        Initialize the file store.

        Args:
            root: Storage root directory
            create_dirs: Whether to create the forms directory automatically
        """
        self.root = Path(root)
        self.create_dirs = create_dirs

        if create_dirs:
            (self.root / FORMS_DIR).mkdir(parents=True, exist_ok=True)

    def slot_for(self, form_name: str) -> StorageSlot:
        """Get the slot for a form, keyed by its title."""
        return StorageSlot(root=self.root, name=safe_name(form_name))

    def quarantine_slot(self) -> StorageSlot:
        """Get the bucket that receives unparseable candidates."""
        return StorageSlot(root=self.root, name=BAD_FORM_SLOT)

    def list_slots(self) -> List[StorageSlot]:
        """All slots holding a primary definition, sorted by name."""
        forms_dir = self.root / FORMS_DIR
        if not forms_dir.exists():
            return []
        slots = [
            StorageSlot(root=self.root, name=entry.name)
            for entry in sorted(forms_dir.iterdir())
            if entry.is_dir()
        ]
        return [slot for slot in slots if slot.primary_exists()]

    def promote_primary(self, source: Path, slot: StorageSlot, copy_file: bool = False) -> PromotionResult:
        """Promote a candidate into the slot's primary location."""
        return promote(source, slot.primary_file, copy_file=copy_file)

    def promote_revised(self, source: Path, slot: StorageSlot, copy_file: bool = False) -> PromotionResult:
        """Promote a candidate into the slot's revised location."""
        return promote(source, slot.revised_file, copy_file=copy_file)

    def begin_media_fetch(self, slot: StorageSlot) -> None:
        """Record that the slot's attachments are being downloaded."""
        slot.media_directory.mkdir(parents=True, exist_ok=True)
        slot.media_pending_marker.touch()

    def end_media_fetch(self, slot: StorageSlot) -> None:
        """Record that the slot's attachments are complete."""
        if slot.media_pending_marker.exists():
            slot.media_pending_marker.unlink()

    def promote_revision(self, slot: StorageSlot) -> Optional[PromotionResult]:
        """
        Replace the primary with the revised copy, once a sync has completed.

        Returns:
            The promotion result, or None if the slot has no revised file

        Raises:
            StorageIOError: If the revised file cannot be moved or removed
        """
        if not slot.revised_exists():
            return None

        result = rename_or_copy(slot.revised_file, slot.primary_file)
        if result.pending_deletion is not None:
            # A leftover revised file would stay authoritative; remove it now
            try:
                result.pending_deletion.unlink()
            except OSError as e:
                raise StorageIOError(
                    f"Revised copy promoted but could not be removed: {e}",
                    source=slot.revised_file,
                    target=slot.primary_file,
                ) from e
            result = PromotionResult(source=result.source, target=result.target, method=result.method)

        logger.info(f"Promoted revised definition into primary for slot {slot.name}")
        return result
