"""
Exception hierarchy for check verification.

Each exception maps to one failure category so callers can decide whether
a condition is recovered locally, surfaced to the user, or fatal.
"""

from __future__ import annotations


class CheckGuardianError(Exception):
    """Base exception for all check verification failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DecodeError(CheckGuardianError):
    """A document payload could not be decoded or parsed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("DECODE_FAILED", message, details)


class MalformedResponse(CheckGuardianError):
    """The analysis response holds no parseable JSON object, even after repair."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("MALFORMED_RESPONSE", message, details)


class AnalysisError(CheckGuardianError):
    """The external analysis call failed, timed out, or returned unusable text."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("ANALYSIS_FAILED", message, details)


class NoTemplateAvailable(CheckGuardianError):
    """No stored template can be used to verify a document."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NO_TEMPLATE_AVAILABLE", message, details)


class StorageError(CheckGuardianError):
    """A persisted collection could not be decoded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("STORAGE_CORRUPT", message, details)
