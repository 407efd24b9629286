"""
Form definition reconciler.

Merges a freshly downloaded form definition into local storage that may
already hold a primary copy and/or a revised copy left behind by an earlier,
interrupted sync. Everything is derived from what is on disk, so a run that
crashed half-way resumes to the same decisions.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..core.events import DefinitionUpdated, EventCallback, emit
from ..core.exceptions import DefinitionError, FormParseError
from ..core.logging import SyncContext, log_with_context
from ..core.models import ComparisonResult, FormDefinition, ReconciliationOutcome
from ..forms.comparator import compare_forms
from ..forms.parser import ParsedForm, read_form
from ..storage.promotion import DeferredCleanup, PromotionResult
from ..storage.slot import StorageSlot, VersionedFileStore


logger = logging.getLogger(__name__)

INCOMPATIBLE_MESSAGE = "Form definitions are incompatible."


class FormDefinitionReconciler:
    """
    Reconciles candidate form files against a versioned file store.

    Calls for the same form must not run concurrently; calls for different
    forms touch disjoint slots and may.
    """

    def __init__(
        self,
        store: VersionedFileStore,
        on_event: Optional[EventCallback] = None,
        cleanup: Optional[DeferredCleanup] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: File store holding the form slots
            on_event: Callback receiving DefinitionUpdated events
            cleanup: End-of-run list that receives sources left behind by
                copy fallbacks
        """
        self.store = store
        self.on_event = on_event
        self.cleanup = cleanup

    def reconcile(self, candidate_path: Path, copy_file: bool = False) -> ReconciliationOutcome:
        """
        Merge a candidate form file into local storage.

        Args:
            candidate_path: The downloaded form definition
            copy_file: Copy the candidate instead of moving it

        Returns:
            ReconciliationOutcome

        Raises:
            DefinitionError: If the candidate is missing/unreadable, a local copy
                cannot be parsed, or the candidate conflicts with local copies
            StorageIOError: If a promotion fails completely
        """
        candidate_path = Path(candidate_path)
        if not candidate_path.exists():
            raise DefinitionError("Form directory does not contain form", path=candidate_path)

        try:
            candidate = read_form(candidate_path)
        except FormParseError as e:
            return self._quarantine(candidate_path, copy_file, e)
        except OSError as e:
            raise DefinitionError(f"Unable to read form: {e}", path=candidate_path) from e

        slot = self.store.slot_for(candidate.title)
        with SyncContext(form_id=candidate.form_id, slot=slot.name):
            outcome = self._reconcile(candidate, candidate_path, slot, copy_file)

        if self.cleanup is not None:
            self.cleanup.track(outcome.promotions)
        if outcome.updated:
            emit(self.on_event, DefinitionUpdated(outcome.definition))
        return outcome

    def load_definition(self, slot: StorageSlot) -> FormDefinition:
        """
        Load the authoritative definition of an existing slot.

        Raises:
            DefinitionError: If the slot has no primary file or it cannot be parsed
        """
        if not slot.primary_exists():
            raise DefinitionError("Form directory does not contain form", path=slot.primary_file)
        if slot.revised_exists():
            return self._load(slot, slot.revised_file, revised=True)
        return self._load(slot, slot.primary_file)

    def _reconcile(
        self,
        candidate: ParsedForm,
        candidate_path: Path,
        slot: StorageSlot,
        copy_file: bool,
    ) -> ReconciliationOutcome:
        promotions: List[PromotionResult] = []
        is_identical = False
        needs_media_update = False

        revised = None
        if slot.revised_exists():
            revised = self._load(slot, slot.revised_file, revised=True)

        if not slot.primary_exists():
            # First time this form is seen
            promotions.append(self.store.promote_primary(candidate_path, slot, copy_file))
            # With a revised copy around, media was fetched by an earlier run
            needs_media_update = revised is None
            primary = self._load(slot, slot.primary_file)
            log_with_context(logger, logging.INFO, f"Stored new form definition in {slot.primary_file}")
        else:
            primary = self._load(slot, slot.primary_file)
            result = compare_forms(candidate, primary.form)
            log_with_context(logger, logging.DEBUG, f"Candidate vs primary: {result.value}")

            if result.is_not_newer():
                pass
            elif result == ComparisonResult.IDENTICAL:
                is_identical = True
                # Resume a media fetch that an earlier run did not finish
                needs_media_update = revised is None and slot.media_fetch_pending()
            elif revised is None:
                if result == ComparisonResult.DIFFERENT:
                    log_with_context(logger, logging.ERROR, "Candidate conflicts with the primary copy")
                    raise DefinitionError(INCOMPATIBLE_MESSAGE, path=slot.primary_file, form_id=candidate.form_id)
                promotions.append(self.store.promote_primary(candidate_path, slot, copy_file))
                needs_media_update = True
                primary = self._load(slot, slot.primary_file)
                log_with_context(logger, logging.INFO, "Replaced primary with a newer compatible version")
            else:
                result = compare_forms(candidate, revised.form)
                log_with_context(logger, logging.DEBUG, f"Candidate vs revised: {result.value}")

                if result == ComparisonResult.DIFFERENT:
                    log_with_context(logger, logging.ERROR, "Candidate conflicts with both local copies")
                    raise DefinitionError(INCOMPATIBLE_MESSAGE, path=slot.revised_file, form_id=candidate.form_id)
                elif result == ComparisonResult.IDENTICAL:
                    is_identical = True
                    needs_media_update = True
                elif not result.is_not_newer():
                    promotions.append(self.store.promote_revised(candidate_path, slot, copy_file))
                    needs_media_update = True
                    revised = self._load(slot, slot.revised_file, revised=True)
                    log_with_context(logger, logging.INFO, "Replaced revised copy with a newer version")

        if slot.revised_exists():
            definition = revised if revised is not None else self._load(slot, slot.revised_file, revised=True)
        else:
            definition = primary

        return ReconciliationOutcome(
            definition=definition,
            needs_media_update=needs_media_update,
            is_identical=is_identical,
            promotions=promotions,
        )

    def _quarantine(self, candidate_path: Path, copy_file: bool, error: FormParseError) -> ReconciliationOutcome:
        # An unparseable candidate must not block later syncs or touch a good
        # local copy: park it in the bad-form bucket and carry on as identical.
        slot = self.store.quarantine_slot()
        logger.warning(f"Bad form definition {candidate_path}: {error}; redirecting to {slot.name}")

        promotions = []
        if not slot.primary_exists():
            promotions.append(self.store.promote_primary(candidate_path, slot, copy_file))
        if self.cleanup is not None:
            self.cleanup.track(promotions)

        return ReconciliationOutcome(
            definition=None,
            needs_media_update=False,
            is_identical=True,
            quarantined=True,
            promotions=promotions,
        )

    def _load(self, slot: StorageSlot, path: Path, revised: bool = False) -> FormDefinition:
        try:
            form = read_form(path)
        except (FormParseError, OSError) as e:
            logger.error(f"Unable to load local form definition {path}: {e}")
            raise DefinitionError(f"Unable to load form definition: {e}", path=path) from e
        return FormDefinition(
            form=form,
            form_directory=slot.directory,
            revised_file=path if revised else None,
        )


def reconcile(
    candidate_path: Path,
    storage_root: Path,
    copy_file: bool = False,
    on_event: Optional[EventCallback] = None,
    cleanup: Optional[DeferredCleanup] = None,
) -> ReconciliationOutcome:
    """
    Reconcile a candidate form file against the store rooted at storage_root.

    See FormDefinitionReconciler.reconcile.
    """
    reconciler = FormDefinitionReconciler(
        VersionedFileStore(storage_root),
        on_event=on_event,
        cleanup=cleanup,
    )
    return reconciler.reconcile(candidate_path, copy_file=copy_file)
