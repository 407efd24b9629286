"""
Core data models for form synchronization.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from ..forms.model import FormModel
    from ..forms.parser import ParsedForm
    from ..storage.promotion import PromotionResult


class ComparisonResult(str, Enum):
    """
    Outcome of comparing an incoming form definition against a local one.

    EARLIER_VERSION and MISSING_VERSION mean the incoming copy carries no
    newer information. NEWER_VERSION means it supersedes the local copy with
    a compatible data model.
    """
    IDENTICAL = "identical"
    DIFFERENT = "different"
    EARLIER_VERSION = "earlier_version"
    MISSING_VERSION = "missing_version"
    NEWER_VERSION = "newer_version"

    def is_not_newer(self) -> bool:
        return self in (ComparisonResult.EARLIER_VERSION, ComparisonResult.MISSING_VERSION)


@dataclass(frozen=True, eq=False)
class FormDefinition:
    """
    A form definition loaded from a storage slot.

    Identity is (form_id, version); a missing version is a distinct value,
    not a wildcard.

    Attributes:
        form: The parsed form
        form_directory: The storage slot directory the form lives in
        revised_file: The revised file, when the revised copy is authoritative
    """
    form: "ParsedForm"
    form_directory: Path
    revised_file: Optional[Path] = None

    @property
    def form_id(self) -> str:
        return self.form.form_id

    @property
    def version(self) -> Optional[str]:
        return self.form.version

    @property
    def form_name(self) -> str:
        return self.form.title

    @property
    def model(self) -> "FormModel":
        return self.form.model

    @property
    def is_encrypted(self) -> bool:
        return self.form.encrypted

    @property
    def definition_file(self) -> Optional[Path]:
        """The file this definition should be read from."""
        if self.revised_file is not None:
            return self.revised_file
        return self.form.path

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormDefinition):
            return NotImplemented
        return self.form_id == other.form_id and self.version == other.version

    def __hash__(self) -> int:
        return hash((self.form_id, self.version))

    def __str__(self) -> str:
        return self.form_name


@dataclass(frozen=True)
class ReconciliationOutcome:
    """
    Result of reconciling a candidate form against local storage.

    Attributes:
        definition: The authoritative local definition (None only when quarantined)
        needs_media_update: True if the form's attachments must be (re)fetched
        is_identical: True if the candidate matched a local copy
        quarantined: True if the candidate could not be parsed and was
            redirected to the unparseable-form bucket
        promotions: File promotions performed during the call
    """
    definition: Optional[FormDefinition]
    needs_media_update: bool
    is_identical: bool
    quarantined: bool = False
    promotions: List["PromotionResult"] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        """True when a real definition update happened."""
        return not self.is_identical and self.needs_media_update
