"""
Error Types for Resume Intel
============================

Every failure the pipeline reports to a caller is one of these classes.
Each carries an HTTP status and a user-facing message that tells the uploader
what to do next: re-upload a text-based file, retry later, or pick another
file type.
"""

from typing import Dict, List, Optional


class ResumeIntelError(Exception):
    """Base class for all pipeline errors."""

    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {"ok": False, "error": self.message}


class InvalidRequest(ResumeIntelError):
    status_code = 400
    default_message = "Invalid request."


# ========== Extraction ==========

class ExtractionError(ResumeIntelError):
    """Raised when a document cannot be turned into text."""


class UnsupportedFormat(ExtractionError):
    status_code = 415
    default_message = "Unsupported file type. Upload PDF, DOCX, or TXT."


class FileTooLarge(ExtractionError):
    status_code = 413
    default_message = "File too large."


class InsufficientExtractedText(ExtractionError):
    status_code = 422
    default_message = (
        "Document text appears empty. Please upload a text-based PDF/DOCX/TXT "
        "(not just images)."
    )


class ExternalToolError(ExtractionError):
    """Raised when an external helper process (rasterizer, OCR) fails."""

    def __init__(self, message: Optional[str] = None, tool: Optional[str] = None):
        self.tool = tool
        super().__init__(message)


class ToolUnavailable(ExternalToolError):
    status_code = 503
    default_message = (
        "OCR tools are unavailable on the server. Please upload a text-based "
        "PDF/DOCX/TXT or try again later."
    )


class ToolTimeout(ExternalToolError):
    status_code = 504
    default_message = "OCR took too long. Try a text-based PDF or DOCX."


# ========== Data access ==========

class TaxonomyFetchFailure(ResumeIntelError):
    status_code = 502
    default_message = "Skills taxonomy could not be loaded."


class StorageDownloadFailure(ResumeIntelError):
    status_code = 404
    default_message = "Failed to download resume from storage."

    def __init__(self, attempts: List[Dict], message: Optional[str] = None):
        self.attempts = attempts
        super().__init__(message)

    def to_dict(self) -> Dict:
        payload = super().to_dict()
        payload["tried"] = self.attempts
        return payload


class JobNotFound(ResumeIntelError):
    status_code = 404
    default_message = "Job not found."


class ApplicationNotFound(ResumeIntelError):
    status_code = 404
    default_message = "Application not found."


class MissingResumeKey(ResumeIntelError):
    status_code = 422
    default_message = "Application has no stored resume. Upload one first."


__all__ = [
    "ResumeIntelError",
    "InvalidRequest",
    "ExtractionError",
    "UnsupportedFormat",
    "FileTooLarge",
    "InsufficientExtractedText",
    "ExternalToolError",
    "ToolUnavailable",
    "ToolTimeout",
    "TaxonomyFetchFailure",
    "StorageDownloadFailure",
    "JobNotFound",
    "ApplicationNotFound",
    "MissingResumeKey",
]
