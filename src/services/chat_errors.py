"""Errors raised by the chat message pipeline.

All of these are caught at the operation boundary (send, upload, fetch) and
turned into a rolled back optimistic entry or a transient notice. Only
FetchError reaches the caller, which renders the error state.
"""


class ChatError(Exception):
    """Base exception for chat pipeline errors."""

    pass


class FetchError(ChatError):
    """Loading the message history failed."""

    pass


class SendError(ChatError):
    """Persisting a message row failed."""

    pass


class UploadError(ChatError):
    """Uploading an attachment to object storage failed; nothing was stored."""

    pass


class OrphanWriteError(SendError):
    """The attachment was uploaded but its message row could not be written."""

    def __init__(self, message: str, file_url: str) -> None:
        """Initialize orphan write error.

        Args:
            message: Human-readable error description.
            file_url: Public URL of the uploaded object left without a row.
        """
        self.file_url = file_url
        super().__init__(message)


class SubscriptionError(ChatError):
    """The realtime channel failed to establish or dropped."""

    pass


class OperationTimeoutError(ChatError):
    """A backend call did not complete before its deadline."""

    def __init__(self, operation: str, timeout: float) -> None:
        """Initialize timeout error.

        Args:
            operation: Name of the backend operation that timed out.
            timeout: Deadline in seconds.
        """
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")
