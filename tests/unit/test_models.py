"""
Unit tests for core models and events.
"""

from pathlib import Path

from formsync.core.events import DefinitionUpdated, emit
from formsync.core.models import FormDefinition, ReconciliationOutcome
from formsync.forms.parser import parse_form


def definition(xml_text, revised_file=None):
    return FormDefinition(
        form=parse_form(xml_text, path=Path("/storage/forms/x/x.xml")),
        form_directory=Path("/storage/forms/x"),
        revised_file=revised_file,
    )


class TestFormDefinition:
    """Tests for FormDefinition."""

    def test_equality_by_id_and_version(self, xform):
        a = definition(xform(version="1"))
        b = definition(xform(version="1", hint="changed label"))

        assert a == b
        assert hash(a) == hash(b)

    def test_missing_version_is_distinct(self, xform):
        assert definition(xform(version=None)) != definition(xform(version="1"))
        assert definition(xform(version=None)) == definition(xform(version=None))

    def test_properties(self, xform):
        d = definition(xform(form_id="household", title="Household Survey"))

        assert d.form_id == "household"
        assert d.form_name == "Household Survey"
        assert str(d) == "Household Survey"
        assert d.is_encrypted is False
        assert d.model.child_by_name("age") is not None

    def test_definition_file(self, xform):
        revised = Path("/storage/forms/x/x.xml.revised")

        assert definition(xform()).definition_file == Path("/storage/forms/x/x.xml")
        assert definition(xform(), revised_file=revised).definition_file == revised


class TestReconciliationOutcome:
    """Tests for ReconciliationOutcome."""

    def test_updated(self, xform):
        d = definition(xform())

        assert ReconciliationOutcome(d, needs_media_update=True, is_identical=False).updated
        assert not ReconciliationOutcome(d, needs_media_update=True, is_identical=True).updated
        assert not ReconciliationOutcome(d, needs_media_update=False, is_identical=False).updated


class TestEmit:
    """Tests for event delivery."""

    def test_emit_without_callback(self, xform):
        emit(None, DefinitionUpdated(definition(xform())))

    def test_emit_with_callback(self, xform, events):
        event = DefinitionUpdated(definition(xform()))

        emit(events.append, event)

        assert events == [event]
