"""
Core abstractions for the formsync framework.
"""

from .exceptions import (
    FormSyncError,
    DefinitionError,
    FormParseError,
    MalformedCursorError,
    StorageIOError,
    ConnectorError,
    ConfigError,
)
from .models import ComparisonResult, FormDefinition, ReconciliationOutcome

__all__ = [
    "FormSyncError",
    "DefinitionError",
    "FormParseError",
    "MalformedCursorError",
    "StorageIOError",
    "ConnectorError",
    "ConfigError",
    "ComparisonResult",
    "FormDefinition",
    "ReconciliationOutcome",
]
