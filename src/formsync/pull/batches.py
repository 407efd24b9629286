"""
Instance ID batch loop.
"""

import logging
from typing import Iterator, Optional

from .aggregate_connector import AggregateConnector, InstanceIdBatch
from .cursor import Cursor


logger = logging.getLogger(__name__)


def iter_instance_id_batches(
    connector: AggregateConnector,
    form_id: str,
    start_cursor: Optional[Cursor] = None,
    num_entries: int = 100,
) -> Iterator[InstanceIdBatch]:
    """
    Page through a form's instance IDs.

    Stops on an empty page or when the server hands back the cursor it was
    given. A cursor that moves back in time is logged and also ends the loop.

    Args:
        connector: Aggregate connector
        form_id: Form to list
        start_cursor: Cursor to resume from (empty cursor starts from the beginning)
        num_entries: Page size

    Yields:
        InstanceIdBatch, whose cursor is the one to persist after processing it
    """
    cursor = start_cursor or Cursor.empty()
    pages = 0
    while True:
        batch = connector.fetch_instance_id_chunk(form_id, cursor, num_entries)
        if batch.is_empty():
            logger.debug(f"Empty page for {form_id} after {pages} page(s)")
            return

        pages += 1
        yield batch

        if batch.cursor == cursor:
            logger.debug(f"Cursor for {form_id} stopped advancing after {pages} page(s)")
            return
        if batch.cursor < cursor:
            logger.warning(
                f"Server cursor for {form_id} moved backwards "
                f"({cursor.last_update} -> {batch.cursor.last_update}); stopping"
            )
            return
        cursor = batch.cursor
