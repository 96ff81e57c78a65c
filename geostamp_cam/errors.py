from __future__ import annotations


class GeostampError(Exception):
    """Base class for recoverable editing-session errors."""


class PermissionDenied(GeostampError):
    """Location or storage access was refused."""


class ProviderError(GeostampError):
    """A place-search provider failed (network, HTTP status, bad JSON)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class NoImageError(GeostampError):
    """An editing operation needs a base image and none is loaded."""


class SaveInProgress(GeostampError):
    """A save was requested while another one is still running."""


class SaveFailure(GeostampError):
    """Snapshot or persistence failed; the session is left as it was."""
