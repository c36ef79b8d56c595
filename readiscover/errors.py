"""
errors.py
---------
Error taxonomy. Every error carries a human-readable message and the HTTP status
the API layer reports it with; stack detail goes to the log only.
"""
from __future__ import annotations


class ReadiscoverError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ReadiscoverError):
    """Required request fields are missing or malformed."""
    status_code = 400


class ArchiveTruncatedError(ReadiscoverError):
    """An entry declares more content bytes than the archive holds."""
    status_code = 400


class MainDocumentMissingError(ReadiscoverError):
    """No LaTeX document could be selected as the paper's entry point."""
    status_code = 400


class UpstreamCapabilityError(ReadiscoverError):
    """The completion provider or the archive source failed or returned garbage."""
    status_code = 502


class SessionNotFoundError(ReadiscoverError):
    status_code = 404

    def __init__(self, session_id: str = "") -> None:
        super().__init__("Session not found or expired")
        self.session_id = session_id


class StructureExtractionEmpty(UserWarning):
    """Soft failure: the paper yielded no title or no figures. Logged, never raised."""
