"""Session store exceptions.

Exception hierarchy:
- SessionStoreError (base)
  - ConfigurationError (invalid settings, raised at construction)
  - DatabaseConnectionError (connect/authenticate/namespace selection)
  - SessionOperationError (get/set/destroy/length/all/clear failures)
"""


class SessionStoreError(Exception):
    """Base exception for session store errors."""

    pass


class ConfigurationError(SessionStoreError, ValueError):
    """Raised when the store configuration is invalid.

    Subclasses ValueError so pydantic validators surface it as a
    ValidationError.
    """

    pass


class DatabaseConnectionError(SessionStoreError):
    """Raised when connecting, signing in or selecting a namespace fails."""

    pass


class SessionOperationError(SessionStoreError):
    """Raised when a data operation against the session table fails.

    Attributes:
        operation: Name of the failed operation (get/set/destroy/...)
        session_id: Session identifier, when the operation targets one
    """

    def __init__(self, message: str, operation: str, session_id: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.session_id = session_id


__all__ = [
    "SessionStoreError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "SessionOperationError",
]
