from __future__ import annotations


class RelayError(Exception):
    """Base class for failures surfaced to the caller as ``{"error": ...}``."""

    status_code: int = 500


class ValidationError(RelayError):
    """Request body matches neither input mode. Raised before any session exists."""

    status_code = 400


class ThreadNotFoundError(RelayError):
    pass


class CompletionServiceError(RelayError):
    pass


class RenderError(RelayError):
    pass


class RecordStoreError(RelayError):
    pass


class PersistError(RecordStoreError):
    """History write failed in a mode where durable history is required."""
