"""
Pull-cycle driver.

For each form: download the definition, reconcile it into local storage,
refresh its attachments when the reconciler asks for it, then page through the
form's submission instance IDs from the last saved cursor. Progress is
reported through an injected event callback.
"""

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from ..core.events import EventCallback, PullCancel, PullComplete, PullFailure, PullSuccess, emit
from ..core.exceptions import FormSyncError, MalformedCursorError, StorageIOError
from ..core.logging import SyncContext, log_with_context
from ..core.models import ReconciliationOutcome
from ..reconcile.reconciler import FormDefinitionReconciler
from ..storage.promotion import DeferredCleanup
from ..storage.slot import StorageSlot, VersionedFileStore, safe_name
from .aggregate_connector import AggregateConnector
from .batches import iter_instance_id_batches
from .cursor import Cursor


logger = logging.getLogger(__name__)

CURSOR_FILE = "cursor.json"
INCOMING_DIR = ".incoming"

MediaFetcher = Callable[[str, Path], None]


def load_cursor(form_directory: Path) -> Cursor:
    """
    Load the saved cursor of a form slot, or the empty cursor.

    Raises:
        MalformedCursorError: If the cursor file is not a valid cursor record
    """
    path = Path(form_directory) / CURSOR_FILE
    if not path.exists():
        return Cursor.empty()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Cursor.from_json(data)
    except (OSError, ValueError) as e:
        logger.error(f"Unreadable cursor file {path}: {e}")
        raise MalformedCursorError(f"Unreadable cursor file: {e}", path=path) from e
    except MalformedCursorError as e:
        logger.error(f"Invalid cursor in {path}: {e}")
        e.path = path
        raise


def save_cursor(form_directory: Path, cursor: Cursor) -> None:
    """
    Persist a form slot's cursor, replacing the previous one in a single rename.

    Raises:
        StorageIOError: If the cursor cannot be written
    """
    path = Path(form_directory) / CURSOR_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, staging = tempfile.mkstemp(prefix=f".{CURSOR_FILE}-", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(cursor.to_json(), f, indent=2)
        os.replace(staging, path)
    except OSError as e:
        Path(staging).unlink(missing_ok=True)
        logger.error(f"Unable to save cursor to {path}: {e}")
        raise StorageIOError(f"Unable to save cursor: {e}", source=Path(staging), target=path) from e


@dataclass
class FormPullResult:
    """Result of pulling one form."""
    form_id: str
    outcome: ReconciliationOutcome
    instance_ids: List[str] = field(default_factory=list)
    cursor: Cursor = field(default_factory=Cursor.empty)
    media_updated: bool = False


class PullDriver:
    """
    Pulls form definitions and submission instance IDs for a list of forms.
    """

    def __init__(
        self,
        connector: AggregateConnector,
        store: VersionedFileStore,
        num_entries: int = 100,
        on_event: Optional[EventCallback] = None,
        fetch_media: Optional[MediaFetcher] = None,
    ):
        """
        Initialize the driver.

        Args:
            connector: Aggregate connector
            store: Local file store
            num_entries: Instance IDs per page
            on_event: Callback for DefinitionUpdated and pull events
            fetch_media: Called with (form_id, media_directory) when a form's
                attachments need refreshing; raises FormSyncError on failure.
                Without one, attachments are left to the caller and the
                media marker is not touched.
        """
        self.connector = connector
        self.store = store
        self.num_entries = num_entries
        self.on_event = on_event
        self.fetch_media = fetch_media
        self.cleanup = DeferredCleanup()
        self.reconciler = FormDefinitionReconciler(store, on_event=on_event, cleanup=self.cleanup)
        self.run_id = str(uuid.uuid4())
        self._cancel_cause: Optional[str] = None

    def cancel(self, cause: str = "cancelled by user") -> None:
        """Stop before the next form or page."""
        self._cancel_cause = cause

    @property
    def cancelled(self) -> bool:
        return self._cancel_cause is not None

    def pull_form(self, form_id: str) -> FormPullResult:
        """
        Pull one form.

        Raises:
            FormSyncError: On download, reconciliation or cursor errors
        """
        with SyncContext(form_id=form_id, run_id=self.run_id):
            candidate = self.store.root / INCOMING_DIR / f"{safe_name(form_id)}-{uuid.uuid4().hex[:8]}.xml"
            try:
                self.connector.fetch_form_definition(form_id, candidate)
                outcome = self.reconciler.reconcile(candidate)
            finally:
                # Candidates that were not moved into a slot are ours to delete
                if candidate.exists():
                    self.cleanup.register(candidate)
            if outcome.quarantined:
                raise FormSyncError(f"Server returned an unparseable definition for {form_id}")

            form_directory = outcome.definition.form_directory
            cursor = load_cursor(form_directory)
            result = FormPullResult(form_id=form_id, outcome=outcome, cursor=cursor)

            if outcome.needs_media_update:
                slot = StorageSlot(self.store.root, form_directory.name)
                result.media_updated = self._update_media(form_id, slot)

            for batch in iter_instance_id_batches(self.connector, form_id, cursor, self.num_entries):
                result.instance_ids.extend(batch.instance_ids)
                result.cursor = batch.cursor
                save_cursor(form_directory, batch.cursor)
                if self.cancelled:
                    break

            log_with_context(
                logger, logging.INFO,
                f"Pulled {len(result.instance_ids)} instance id(s) for {form_id}",
            )
            return result

    def _update_media(self, form_id: str, slot: StorageSlot) -> bool:
        if self.fetch_media is None:
            log_with_context(logger, logging.DEBUG, "Attachments need refreshing; no media fetcher configured")
            return False
        # The marker stays behind if the fetch raises
        self.store.begin_media_fetch(slot)
        self.fetch_media(form_id, slot.media_directory)
        self.store.end_media_fetch(slot)
        log_with_context(logger, logging.INFO, f"Refreshed attachments in {slot.media_directory}")
        return True

    def pull_forms(self, form_ids: Iterable[str]) -> Dict[str, FormPullResult]:
        """
        Pull every form, reporting success or failure per form.

        Deletes candidates left behind by copy fallbacks once all forms are done.
        """
        results: Dict[str, FormPullResult] = {}
        try:
            for form_id in form_ids:
                if self.cancelled:
                    break
                try:
                    result = self.pull_form(form_id)
                except FormSyncError as e:
                    logger.error(f"Pull failed for {form_id}: {e}")
                    emit(self.on_event, PullFailure(form_id=form_id, reason=str(e)))
                    continue
                results[form_id] = result
                emit(self.on_event, PullSuccess(form_id=form_id, instance_count=len(result.instance_ids)))
        finally:
            self.cleanup.drain()

        if self.cancelled:
            emit(self.on_event, PullCancel(cause=self._cancel_cause))
        else:
            emit(self.on_event, PullComplete(forms_pulled=len(results)))
        return results
