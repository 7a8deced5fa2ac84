"""
Application errors for clean API error handling.

Services raise these; app/api/handlers.py maps them to HTTP status codes so the
client always gets a {"error": ...} body instead of a stack trace.
"""


class AppError(Exception):
    """Base class: every application error carries a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(AppError):
    """Raised when required input (query, userId, text, url...) is missing or empty."""


class CollaboratorError(AppError):
    """Raised when the vector store, embeddings API or LLM fails or is misconfigured."""


class InvalidFileTypeError(AppError):
    """Raised when an uploaded file has a disallowed extension."""

    def __init__(self, filename: str, allowed: list[str]) -> None:
        self.filename = filename
        self.allowed = allowed
        super().__init__(
            f"Invalid file type for {filename!r}. Allowed: {', '.join(allowed)}"
        )


class DocumentNotFoundError(AppError):
    """Raised when ingestion produced no content to index (e.g. a URL with no pages)."""
