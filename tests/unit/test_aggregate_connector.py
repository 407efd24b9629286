"""
Unit tests for the Aggregate connector.

These tests use a mocked requests session; no network access is needed.
"""

from datetime import date
from unittest.mock import MagicMock
from xml.sax.saxutils import escape

import pytest
import requests

from formsync.core.exceptions import ConnectorError, MalformedCursorError
from formsync.pull.aggregate_connector import AggregateConnector, parse_id_chunk
from formsync.pull.cursor import Cursor


def id_chunk(instance_ids, cursor):
    """Build an idChunk document."""
    ids = "".join(f"<id>{instance_id}</id>" for instance_id in instance_ids)
    return (
        '<idChunk xmlns="http://opendatakit.org/submissions">'
        f"<idList>{ids}</idList>"
        f"<resumptionCursor>{escape(cursor.serialize())}</resumptionCursor>"
        "</idChunk>"
    )


def make_response(status_code=200, text="", content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.content = content
    return response


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("formsync.pull.aggregate_connector.time.sleep", lambda seconds: None)


class TestParseIdChunk:
    """Tests for parse_id_chunk."""

    def test_ids_and_cursor(self):
        cursor = Cursor.of(date(2020, 1, 1), "uuid:2")

        batch = parse_id_chunk(id_chunk(["uuid:1", "uuid:2"], cursor))

        assert batch.instance_ids == ["uuid:1", "uuid:2"]
        assert batch.cursor == cursor
        assert not batch.is_empty()

    def test_empty_chunk(self):
        batch = parse_id_chunk(id_chunk([], Cursor.empty()))

        assert batch.is_empty()
        assert batch.cursor.is_empty()

    def test_malformed_document(self):
        with pytest.raises(ConnectorError):
            parse_id_chunk("<idChunk>")

    def test_malformed_cursor(self):
        xml = (
            "<idChunk><idList><id>uuid:1</id></idList>"
            "<resumptionCursor>&lt;cursor&gt;&lt;attributeValue&gt;soon&lt;/attributeValue&gt;&lt;/cursor&gt;"
            "</resumptionCursor></idChunk>"
        )

        with pytest.raises(MalformedCursorError):
            parse_id_chunk(xml)


class TestAggregateConnector:
    """Tests for AggregateConnector."""

    def test_fetch_instance_id_chunk(self):
        cursor = Cursor.of(date(2020, 1, 1))
        session = MagicMock()
        session.get.return_value = make_response(text=id_chunk(["uuid:9"], cursor))
        connector = AggregateConnector("https://aggregate.example.org/", session=session)

        batch = connector.fetch_instance_id_chunk("household", Cursor.empty(), num_entries=50)

        assert batch.instance_ids == ["uuid:9"]
        args, kwargs = session.get.call_args
        assert args[0] == "https://aggregate.example.org/view/submissionList"
        assert kwargs["params"] == {"formId": "household", "cursor": "", "numEntries": 50}
        assert kwargs["headers"]["User-Agent"] == "formsync/1.0"

    def test_fetch_form_definition(self, tmp_path):
        session = MagicMock()
        session.get.return_value = make_response(content=b"<h:html/>")
        connector = AggregateConnector("https://aggregate.example.org", session=session)
        dest = tmp_path / "incoming" / "household.xml"

        result = connector.fetch_form_definition("household", dest)

        assert result == dest
        assert dest.read_bytes() == b"<h:html/>"
        assert session.get.call_args[0][0] == "https://aggregate.example.org/formXml"

    def test_client_error_is_not_retried(self):
        session = MagicMock()
        session.get.return_value = make_response(status_code=404)
        connector = AggregateConnector("https://aggregate.example.org", session=session)

        with pytest.raises(ConnectorError) as exc_info:
            connector.fetch_instance_id_chunk("missing")

        assert exc_info.value.status_code == 404
        assert session.get.call_count == 1

    def test_server_error_is_retried(self, no_sleep):
        session = MagicMock()
        session.get.side_effect = [
            make_response(status_code=503),
            make_response(text=id_chunk([], Cursor.empty())),
        ]
        connector = AggregateConnector("https://aggregate.example.org", session=session, max_retries=3)

        batch = connector.fetch_instance_id_chunk("household")

        assert batch.is_empty()
        assert session.get.call_count == 2

    def test_connection_errors_exhaust_retries(self, no_sleep):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        connector = AggregateConnector("https://aggregate.example.org", session=session, max_retries=2)

        with pytest.raises(ConnectorError):
            connector.fetch_instance_id_chunk("household")

        assert session.get.call_count == 2

    def test_persistent_server_error(self, no_sleep):
        session = MagicMock()
        session.get.return_value = make_response(status_code=500)
        connector = AggregateConnector("https://aggregate.example.org", session=session, max_retries=2)

        with pytest.raises(ConnectorError) as exc_info:
            connector.fetch_instance_id_chunk("household")

        assert exc_info.value.status_code == 500

    def test_digest_auth(self):
        connector = AggregateConnector("https://aggregate.example.org", username="user", password="secret")

        assert isinstance(connector.session.auth, requests.auth.HTTPDigestAuth)
        connector.close()

    def test_get_name(self):
        connector = AggregateConnector("https://aggregate.example.org/", session=MagicMock())

        assert connector.get_name() == "https://aggregate.example.org"
