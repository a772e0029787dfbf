"""
Error Taxonomy
==============
Every failure the analysis pipeline can report. The proxy collapses all of
them into a single ``{"error": <message>}`` response; the client surfaces
the message as a notification.
"""

from __future__ import annotations


class DermaSightError(Exception):
    """Base class for all application errors."""


class ConfigurationError(DermaSightError):
    """A required setting (e.g. the Autoderm API key) is missing."""


class InvalidRequest(DermaSightError):
    """The caller sent a missing or malformed image payload."""


class UpstreamError(DermaSightError):
    """The classification service answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceUnavailable(UpstreamError):
    """The classification service is unreachable or temporarily down."""


class NoPredictions(DermaSightError):
    """The classification succeeded but returned an empty prediction list."""

    def __init__(self, message: str = "No predictions received."):
        super().__init__(message)


class PersistenceError(DermaSightError):
    """A repository read or write failed."""


class ProfileNotFound(DermaSightError):
    pass


class DuplicateProfile(DermaSightError):
    pass


class AnalysisInProgress(DermaSightError):
    """An analysis is already running for this user action."""


class UntrustedIdentity(DermaSightError):
    """An unverified identity tried to open a privileged profile."""
