"""Relay error hierarchy.

Learn: Every error a session can hit is scoped to one request or one
session; nothing here is fatal to the process. The message attribute is
what the client sees in an "error" event, so it never carries internals
(stack traces, SQL, Redis addresses).
"""


class RelayError(Exception):
    """Base class for errors surfaced to a single session."""

    message = "Request failed"

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


class ProtocolError(RelayError):
    """Frame is not UTF-8 JSON or not a request envelope."""

    message = "Malformed request"


class InvalidParams(RelayError):
    """A required request parameter is missing or has the wrong type."""

    message = "Invalid request parameters"


class UnknownOperation(RelayError):
    message = "Unknown operation"


class UnknownCollection(RelayError):
    message = "Unknown collection"


class Forbidden(RelayError):
    """The authenticated subject may not touch the requested data."""

    message = "Access denied"


class StoreError(RelayError):
    """A data-store call failed."""

    message = "Data store unavailable"


class DocumentNotFound(StoreError):
    message = "Document not found"
