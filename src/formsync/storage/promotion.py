"""
File promotion primitives.

Promotion moves a candidate file into a canonical storage location. The fast
path is an atomic rename; when that is unavailable (cross-device move, file
lock, permissions) the bytes are copied into a staging file beside the target,
which is then renamed over it, and the source is handed back to the caller
for deletion at the end of the run.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.exceptions import StorageIOError


logger = logging.getLogger(__name__)

# Prefix of the temporary files copies are written to before being moved into place
STAGING_PREFIX = ".staging-"


def _copy_atomically(source: Path, target: Path) -> None:
    # The target is either untouched or fully replaced
    fd, staging = tempfile.mkstemp(prefix=STAGING_PREFIX, dir=target.parent)
    os.close(fd)
    try:
        shutil.copyfile(source, staging)
        os.replace(staging, target)
    except OSError:
        Path(staging).unlink(missing_ok=True)
        raise


class PromotionMethod(str, Enum):
    """How a file reached its target."""
    RENAMED = "renamed"
    COPIED = "copied"


@dataclass(frozen=True)
class PromotionResult:
    """
    Result of promoting a file.

    Attributes:
        source: The file that was promoted
        target: Where it now lives
        method: Whether it was renamed or copied
        pending_deletion: Source left behind by a copy fallback, to be deleted
            by the caller once the run is over (None if nothing is left behind
            or the caller asked to keep the source)
    """
    source: Path
    target: Path
    method: PromotionMethod
    pending_deletion: Optional[Path] = None


def copy_into(source: Path, target: Path) -> PromotionResult:
    """
    Copy source to target, keeping the source.

    Raises:
        StorageIOError: If the copy fails
    """
    source, target = Path(source), Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        _copy_atomically(source, target)
    except OSError as e:
        logger.error(f"Unable to copy {source} to {target}: {e}")
        raise StorageIOError(
            f"Unable to copy form definition file into storage: {e}",
            source=source,
            target=target,
        ) from e
    logger.debug(f"Copied {source} -> {target}")
    return PromotionResult(source=source, target=target, method=PromotionMethod.COPIED)


def rename_or_copy(source: Path, target: Path) -> PromotionResult:
    """
    Move source to target, falling back to a copy.

    When the rename fails the source is copied and reported back through
    `pending_deletion`; it is never deleted here.

    Raises:
        StorageIOError: If both the rename and the copy fail
    """
    source, target = Path(source), Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        logger.debug(f"Renamed {source} -> {target}")
        return PromotionResult(source=source, target=target, method=PromotionMethod.RENAMED)
    except OSError as rename_error:
        logger.info(f"Rename of {source} failed ({rename_error}); copying instead")

    try:
        _copy_atomically(source, target)
    except OSError as e:
        logger.error(f"Can neither rename nor copy {source} into {target}: {e}")
        raise StorageIOError(
            "Form directory does not contain form (can neither rename nor copy into storage)",
            source=source,
            target=target,
        ) from e

    return PromotionResult(
        source=source,
        target=target,
        method=PromotionMethod.COPIED,
        pending_deletion=source,
    )


def promote(source: Path, target: Path, copy_file: bool = False) -> PromotionResult:
    """
    Promote source into target.

    Args:
        source: Candidate file
        target: Canonical slot file (overwritten if present)
        copy_file: Keep the source in place (e.g. it is itself a cache)
    """
    if copy_file:
        return copy_into(source, target)
    return rename_or_copy(source, target)


class DeferredCleanup:
    """
    End-of-run cleanup list for sources left behind by copy fallbacks.

    The pull driver owns one per run and drains it once every form is done.
    """

    def __init__(self):
        self._paths: List[Path] = []

    def register(self, path: Path) -> None:
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)

    def track(self, results: Iterable[PromotionResult]) -> None:
        """Register the leftovers of the given promotions."""
        for result in results:
            if result.pending_deletion is not None:
                self.register(result.pending_deletion)

    def pending(self) -> List[Path]:
        return list(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def drain(self) -> List[Path]:
        """
        Delete every registered file.

        Files that cannot be deleted stay registered and are logged.

        Returns:
            The files that were deleted (or were already gone)
        """
        deleted = []
        remaining = []
        for path in self._paths:
            try:
                path.unlink()
                deleted.append(path)
            except FileNotFoundError:
                deleted.append(path)
            except OSError as e:
                logger.warning(f"Unable to delete {path}: {e}")
                remaining.append(path)
        self._paths = remaining
        if deleted:
            logger.info(f"Deleted {len(deleted)} leftover candidate file(s)")
        return deleted
