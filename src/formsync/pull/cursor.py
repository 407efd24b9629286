"""
Aggregate pagination cursor.

A cursor is the "resumptionCursor" document the server hands back with each
page of submission instance IDs. It carries the last-update date of the last
submission returned and, when many submissions share that date, the id of the
last one returned. The server uses both as the lower bound of the next page.

The last-update date is the server-side modification date of a submission,
not its completion or submission date.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

from ..core.exceptions import MalformedCursorError


CURSOR_NAMESPACE = "http://www.opendatakit.org/cursor"
CURSOR_TYPE = "AGGREGATE"

# Only used to order cursors that have no last-update date
SOME_OLD_DATE = datetime(2010, 1, 1, tzinfo=timezone.utc)

# Some servers (Ona) send "0" to mean "no cursor"
LEGACY_EMPTY_VALUES = ("", "0")

_DATE_TIME = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:[Zz]|[+-]\d{2}:\d{2}(?::\d{2})?)?"
)
_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")
_SELF_CLOSED_LAST_RETURNED = re.compile(r"<(?:[\w.-]+:)?uriLastReturnedValue(?:\s[^>]*)?/>")


class CursorOrder(str, Enum):
    """Relative position of two cursors."""
    BEFORE = "before"
    SAME = "same"
    AFTER = "after"


def parse_datetime(text: str) -> datetime:
    """
    Parse an ISO-8601 date-time with offset.

    Accepts a trailing Z and any number of fractional digits. A value without
    an offset is taken as UTC.

    Raises:
        ValueError: If the text is not an ISO-8601 date-time
    """
    text = text.strip()
    if not _DATE_TIME.fullmatch(text):
        raise ValueError(f"Not an ISO-8601 date-time: {text!r}")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat wants exactly 6 fractional digits on older interpreters
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime) -> str:
    """
    Render a date-time the way ISO_OFFSET_DATE_TIME does: seconds always,
    fraction without trailing zeros, Z for UTC.
    """
    rendered = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        rendered += "." + f"{value.microsecond:06d}".rstrip("0")

    offset = value.utcoffset()
    if offset is None or offset == timedelta(0):
        return rendered + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    seconds = int(abs(offset).total_seconds())
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    rendered += f"{sign}{hours:02d}:{minutes:02d}"
    if seconds:
        rendered += f":{seconds:02d}"
    return rendered


def build_cursor_xml(last_update: datetime, last_returned_value: Optional[str] = None) -> str:
    """
    Build the cursor document.

    An absent last-returned value is written as a self-closed tag; a present
    value, even an empty one, as an open/close pair. Servers tell the two apart.
    """
    if last_returned_value is None:
        last_returned = "<uriLastReturnedValue/>"
    else:
        last_returned = f"<uriLastReturnedValue>{escape(last_returned_value)}</uriLastReturnedValue>"
    return (
        f'<cursor xmlns="{CURSOR_NAMESPACE}">'
        "<attributeName>_LAST_UPDATE_DATE</attributeName>"
        f"<attributeValue>{format_datetime(last_update)}</attributeValue>"
        f"{last_returned}"
        "<isForwardCursor>true</isForwardCursor>"
        "</cursor>"
    )


def _find(root: ET.Element, name: str) -> Optional[ET.Element]:
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.rsplit("}", 1)[-1] == name:
            return element
    return None


@dataclass(frozen=True)
class Cursor:
    """
    Immutable pagination cursor.

    Equality is structural over all three fields. Ordering only looks at
    last_update, with SOME_OLD_DATE standing in when it is absent. A naive
    last_update is taken as UTC.

    Attributes:
        value: The serialized cursor document ("" for the empty cursor)
        last_update: Last-update date of the last submission returned
        last_returned_value: Instance id of the last submission returned
    """
    value: str = ""
    last_update: Optional[datetime] = None
    last_returned_value: Optional[str] = None

    def __post_init__(self):
        if self.last_update is not None and self.last_update.tzinfo is None:
            object.__setattr__(self, "last_update", self.last_update.replace(tzinfo=timezone.utc))

    @classmethod
    def empty(cls) -> "Cursor":
        """The start-of-stream cursor."""
        return cls()

    @classmethod
    def parse(cls, cursor_xml: Optional[str]) -> "Cursor":
        """
        Parse a cursor document.

        Raises:
            MalformedCursorError: If the document or its date cannot be parsed
        """
        if cursor_xml is None or cursor_xml.strip() in LEGACY_EMPTY_VALUES:
            return cls.empty()

        try:
            root = ET.fromstring(cursor_xml)
        except ET.ParseError as e:
            raise MalformedCursorError(f"Cursor is not well-formed XML: {e}", cursor_xml=cursor_xml) from e

        last_update = None
        attribute_value = _find(root, "attributeValue")
        if attribute_value is not None and attribute_value.text and attribute_value.text.strip():
            try:
                last_update = parse_datetime(attribute_value.text)
            except ValueError as e:
                raise MalformedCursorError(
                    f"Cursor has an unparseable date: {attribute_value.text!r}",
                    cursor_xml=cursor_xml,
                ) from e

        last_returned_value = None
        last_returned = _find(root, "uriLastReturnedValue")
        if last_returned is not None:
            if last_returned.text:
                last_returned_value = last_returned.text
            elif not _SELF_CLOSED_LAST_RETURNED.search(cursor_xml):
                last_returned_value = ""

        return cls(value=cursor_xml, last_update=last_update, last_returned_value=last_returned_value)

    @classmethod
    def of(
        cls,
        last_update: Union[date, datetime],
        last_returned_value: Optional[str] = None,
    ) -> "Cursor":
        """
        Build a synthetic cursor.

        A date is taken as the start of that day in UTC; a naive datetime as UTC.
        """
        if not isinstance(last_update, datetime):
            last_update = datetime(last_update.year, last_update.month, last_update.day, tzinfo=timezone.utc)
        elif last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=timezone.utc)
        return cls(
            value=build_cursor_xml(last_update, last_returned_value),
            last_update=last_update,
            last_returned_value=last_returned_value,
        )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Cursor":
        """Restore a cursor persisted with to_json."""
        if not isinstance(data, dict) or not isinstance(data.get("value", ""), str):
            raise MalformedCursorError(f"Not a cursor record: {data!r}")
        cursor_type = data.get("type", CURSOR_TYPE)
        if cursor_type != CURSOR_TYPE:
            raise MalformedCursorError(f"Unsupported cursor type: {cursor_type}")
        return cls.parse(data.get("value", ""))

    def to_json(self) -> Dict[str, Any]:
        return {"type": CURSOR_TYPE, "value": self.value}

    def serialize(self) -> str:
        return self.value

    def is_empty(self) -> bool:
        return self.value == ""

    def _sort_key(self) -> datetime:
        return self.last_update or SOME_OLD_DATE

    def compare(self, other: "Cursor") -> CursorOrder:
        mine, theirs = self._sort_key(), other._sort_key()
        if mine < theirs:
            return CursorOrder.BEFORE
        if mine > theirs:
            return CursorOrder.AFTER
        return CursorOrder.SAME

    def __lt__(self, other: "Cursor") -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.compare(other) == CursorOrder.BEFORE

    def __le__(self, other: "Cursor") -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.compare(other) != CursorOrder.AFTER

    def __gt__(self, other: "Cursor") -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.compare(other) == CursorOrder.AFTER

    def __ge__(self, other: "Cursor") -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self.compare(other) != CursorOrder.BEFORE
