"""Domain-level exceptions shared by the access layer and write services.

All exceptions inherit from JobBoardError so callers at the request boundary
can translate them to a response with a single except clause.
"""


class JobBoardError(Exception):
    """Base exception for all job board core errors."""

    pass


class PermissionDenied(JobBoardError):
    """Raised when an authorization check fails.

    Callers must map this to a 403-equivalent response. The message is
    deliberately generic and never states whether the resource exists.
    """

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class NotFound(JobBoardError):
    """Raised when the subject of an operation does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class ValidationError(JobBoardError, ValueError):
    """Raised for structurally invalid input (malformed principal, subject or criteria).

    Subclasses ValueError so it can be raised from inside pydantic validators
    and still be reported as a validation failure.
    """

    pass
