"""Error taxonomy for the chat endpoint."""

from __future__ import annotations

MISSING_OR_MALFORMED_MESSAGES = "missing_or_malformed_messages"
NO_USER_MESSAGE = "no_user_message"

GENERIC_API_ERROR = "Failed to process chat request. Check server logs for details."
QUERY_FAILED_MESSAGE = "Query did not complete successfully"
STREAM_ERROR_MESSAGE = "Stream error occurred"


class ChatServerError(Exception):
    status_code = 500


class InvalidInput(ChatServerError):
    """Request body rejected before any agent work starts."""

    status_code = 400

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class StreamProcessingError(ChatServerError):
    """Failure after the event stream has been opened."""
