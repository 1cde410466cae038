"""
Error taxonomy for the SaveState core.

Every failure the core raises on purpose is a CoreError carrying a short
human-readable reason plus optional details. Batch operations record these
per item; the API maps them onto HTTP status codes.
"""
from __future__ import annotations

from typing import Any, Optional


class CoreError(Exception):
    """Base class for all expected core failures."""

    code = "core_error"
    http_status = 500

    def __init__(self, reason: str, details: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "reason": self.reason, "details": self.details}


class NotAuthenticated(CoreError):
    code = "not_authenticated"
    http_status = 401

    def __init__(self, reason: str = "Not authenticated", details: Optional[str] = None) -> None:
        super().__init__(reason, details)


class MissingCredential(CoreError):
    """The user has not linked the provider account the call needs."""

    code = "missing_credential"
    http_status = 400

    def __init__(self, source: str, details: Optional[str] = None) -> None:
        super().__init__(f"{source} account not linked", details)
        self.source = source


class UpstreamUnavailable(CoreError):
    code = "upstream_unavailable"
    http_status = 502


class MalformedUpstreamPayload(CoreError):
    code = "malformed_upstream_payload"
    http_status = 502


class NoConfidentMatch(CoreError):
    code = "no_confident_match"
    http_status = 404

    def __init__(
        self,
        reason: str = "No confident match",
        details: Optional[str] = None,
        best_guess: Optional[dict[str, Any]] = None,
        score: float = 0.0,
    ) -> None:
        super().__init__(reason, details)
        self.best_guess = best_guess
        self.score = score

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["best_guess"] = self.best_guess
        data["score"] = self.score
        return data


class UnsupportedPlatform(CoreError):
    code = "unsupported_platform"
    http_status = 422


class DataIntegrityError(CoreError):
    code = "data_integrity_error"
    http_status = 409


class PersistenceError(CoreError):
    code = "persistence_error"
    http_status = 500


class SyncInProgress(CoreError):
    """Another sync for the same (user, source) holds the lease."""

    code = "sync_in_progress"
    http_status = 409


# Errors that abort a whole request instead of being recorded per item.
FATAL_ERRORS: tuple[type[CoreError], ...] = (NotAuthenticated, MissingCredential)
