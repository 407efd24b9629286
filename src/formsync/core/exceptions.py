"""
Custom exceptions for the form synchronization framework.
"""


class FormSyncError(Exception):
    """Base exception for all formsync errors."""
    pass


class DefinitionError(FormSyncError):
    """
    Error resolving a form definition against local storage.

    Raised when:
    - The candidate form file is missing or unreadable
    - A local primary or revised copy cannot be parsed
    - The candidate is incompatible with every local copy
    """

    def __init__(self, message: str, path=None, form_id: str = None):
        super().__init__(message)
        self.path = path
        self.form_id = form_id


class FormParseError(FormSyncError):
    """
    Error parsing XForm text into a form model.

    Raised when:
    - The document is not well-formed XML
    - The document has no model instance
    - The instance root carries no form id
    """

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class MalformedCursorError(FormSyncError):
    """
    Error parsing a pagination cursor returned by the server or saved locally.

    Raised when:
    - The cursor document is not well-formed XML
    - The attributeValue element holds an unparseable date-time
    - A saved cursor file is not a valid cursor record
    """

    def __init__(self, message: str, cursor_xml: str = None, path=None):
        super().__init__(message)
        self.cursor_xml = cursor_xml
        self.path = path


class StorageIOError(FormSyncError):
    """
    Error writing a file into a storage slot.

    Raised when:
    - Both the rename and the copy fallback of a promotion failed
    - A pull cursor cannot be saved
    """

    def __init__(self, message: str, source=None, target=None):
        super().__init__(message)
        self.source = source
        self.target = target


class ConnectorError(FormSyncError):
    """
    Error communicating with the remote Aggregate server.

    Raised when:
    - The server is unreachable after all retries
    - The server returns a non-success status
    - A response document cannot be parsed
    """

    def __init__(self, message: str, status_code: int = None, url: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ConfigError(FormSyncError):
    """
    Error in formsync configuration.

    Raised when the configuration file is missing or is not a mapping.
    """
    pass
