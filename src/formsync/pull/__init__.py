"""
Submission pulling: pagination cursor, Aggregate connector and pull driver.
"""

from .cursor import Cursor, CursorOrder, build_cursor_xml, format_datetime, parse_datetime
from .aggregate_connector import AggregateConnector, InstanceIdBatch, parse_id_chunk
from .batches import iter_instance_id_batches
from .driver import FormPullResult, PullDriver, load_cursor, save_cursor

__all__ = [
    "Cursor",
    "CursorOrder",
    "build_cursor_xml",
    "format_datetime",
    "parse_datetime",
    "AggregateConnector",
    "InstanceIdBatch",
    "parse_id_chunk",
    "iter_instance_id_batches",
    "FormPullResult",
    "PullDriver",
    "load_cursor",
    "save_cursor",
]
