"""
Operator action errors.

All action errors inherit from ActionError for consistent handling; the
HTTP layer maps each subclass to a 4xx response.
"""


class ActionError(Exception):
    """Base exception for all operator action failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotConfiguredError(ActionError):
    """Raised when the monitored paths needed by an action are not configured."""

    def __init__(self, what: str = "Monitored paths"):
        super().__init__(f"{what} are not configured.")


class FileNotFoundInLocationError(ActionError):
    """Raised when the file to act on is missing from its location."""

    def __init__(self, name: str, location: str):
        self.name = name
        self.location = location
        super().__init__(f"File not found in {location} directory: {name}")


class FileAlreadyExistsError(ActionError):
    """Raised when the destination of a move already holds a file of that name."""

    def __init__(self, name: str, location: str):
        self.name = name
        self.location = location
        super().__init__(f'A file named "{name}" already exists in the {location} directory.')


class PermissionDeniedError(ActionError):
    """Raised when the service user cannot write to a monitored directory."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        message = f"Permission denied while trying to {operation}. Check folder permissions on the server."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
