"""
XForm parsing, comparison and the form model tree.
"""

from .model import Control, ControlType, DataType, FormModel
from .parser import ParsedForm, parse_form, read_form
from .comparator import compare_forms, compare_versions, is_schema_compatible

__all__ = [
    "Control",
    "ControlType",
    "DataType",
    "FormModel",
    "ParsedForm",
    "parse_form",
    "read_form",
    "compare_forms",
    "compare_versions",
    "is_schema_compatible",
]
