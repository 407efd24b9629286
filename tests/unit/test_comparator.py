"""
Unit tests for form definition comparison.
"""

import pytest

from formsync.core.models import ComparisonResult
from formsync.forms.comparator import compare_forms, compare_versions, is_schema_compatible
from formsync.forms.parser import parse_form


class TestCompareVersions:
    """Tests for compare_versions."""

    @pytest.mark.parametrize("incoming,existing,expected", [
        ("2", "1", 1),
        ("1", "2", -1),
        ("10", "9", 1),
        ("2021010101", "2021010101", 0),
        ("b", "a", 1),
        ("1.10", "1.9", -1),
    ])
    def test_compare(self, incoming, existing, expected):
        assert compare_versions(incoming, existing) == expected


class TestCompareForms:
    """Tests for compare_forms."""

    def test_identical(self, xform):
        a = parse_form(xform())
        b = parse_form(xform())

        assert compare_forms(a, b) == ComparisonResult.IDENTICAL

    def test_identical_ignores_formatting(self, xform):
        a = parse_form(xform())
        b = parse_form(xform().replace("<h:body>", "<h:body>\n   "))

        assert compare_forms(a, b) == ComparisonResult.IDENTICAL

    def test_different_form_id(self, xform):
        a = parse_form(xform(form_id="a"))
        b = parse_form(xform(form_id="b"))

        assert compare_forms(a, b) == ComparisonResult.DIFFERENT

    def test_earlier_version(self, xform):
        incoming = parse_form(xform(version="1"))
        existing = parse_form(xform(version="2"))

        assert compare_forms(incoming, existing) == ComparisonResult.EARLIER_VERSION

    def test_missing_version(self, xform):
        incoming = parse_form(xform(version=None))
        existing = parse_form(xform(version="2"))

        assert compare_forms(incoming, existing) == ComparisonResult.MISSING_VERSION

    def test_newer_compatible_version(self, xform):
        incoming = parse_form(xform(version="2", fields=(("name", "string"), ("age", "int"), ("notes", "string"))))
        existing = parse_form(xform(version="1"))

        assert compare_forms(incoming, existing) == ComparisonResult.NEWER_VERSION

    def test_newer_version_with_changed_type(self, xform):
        incoming = parse_form(xform(version="2", fields=(("name", "string"), ("age", "decimal"))))
        existing = parse_form(xform(version="1"))

        assert compare_forms(incoming, existing) == ComparisonResult.DIFFERENT

    def test_newer_version_with_removed_field(self, xform):
        incoming = parse_form(xform(version="2", fields=(("name", "string"),)))
        existing = parse_form(xform(version="1"))

        assert compare_forms(incoming, existing) == ComparisonResult.DIFFERENT

    def test_same_version_different_content(self, xform):
        incoming = parse_form(xform(version="1", hint="?"))
        existing = parse_form(xform(version="1"))

        assert compare_forms(incoming, existing) == ComparisonResult.DIFFERENT

    def test_versioned_against_unversioned(self, xform):
        """Test that a versioned form supersedes an unversioned copy."""
        incoming = parse_form(xform(version="1"))
        existing = parse_form(xform(version=None))

        assert compare_forms(incoming, existing) == ComparisonResult.NEWER_VERSION

    def test_is_not_newer(self):
        assert ComparisonResult.EARLIER_VERSION.is_not_newer()
        assert ComparisonResult.MISSING_VERSION.is_not_newer()
        assert not ComparisonResult.NEWER_VERSION.is_not_newer()
        assert not ComparisonResult.DIFFERENT.is_not_newer()


class TestSchemaCompatibility:
    """Tests for is_schema_compatible."""

    def test_added_field_is_compatible(self, xform):
        existing = parse_form(xform())
        incoming = parse_form(xform(fields=(("name", "string"), ("age", "int"), ("extra", "date"))))

        assert is_schema_compatible(incoming, existing)
        assert not is_schema_compatible(existing, incoming)
