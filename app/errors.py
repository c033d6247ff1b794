"""
Error taxonomy shared by the vault, provider adapters, session store and
agent pipeline.

Every error carries a ``kind`` so callers (the fetch orchestrator and the
HTTP routes) branch on the failure class rather than on message text.
"""

from enum import StrEnum


class CredentialErrorKind(StrEnum):
    NOT_CONNECTED = "not_connected"
    INVALID_GRANT = "invalid_grant"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    REFRESH_FAILED = "refresh_failed"
    NOT_CONFIGURED = "not_configured"


class FetchErrorKind(StrEnum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    ENDPOINT_GONE = "endpoint_gone"
    UNREACHABLE = "unreachable"


class SessionErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    SEALED = "sealed"


class StageErrorKind(StrEnum):
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_ARTIFACT = "invalid_artifact"
    PREREQUISITE_MISSING = "prerequisite_missing"


class CredentialError(Exception):
    """Raised by the credential vault."""

    def __init__(
        self,
        message: str,
        kind: CredentialErrorKind,
        user_id: str | None = None,
        provider: str | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.kind = kind
        self.user_id = user_id
        self.provider = provider
        self.recoverable = recoverable


class FetchError(Exception):
    """Raised by provider adapters when a fetch cannot complete."""

    def __init__(
        self,
        message: str,
        kind: FetchErrorKind,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def recoverable(self) -> bool:
        return self.kind in (FetchErrorKind.RATE_LIMITED, FetchErrorKind.UNREACHABLE)


class SessionError(Exception):
    """Raised by the session store."""

    def __init__(self, message: str, kind: SessionErrorKind, session_id: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.session_id = session_id


class StageError(Exception):
    """Raised when a pipeline stage cannot produce a valid artifact."""

    def __init__(
        self,
        message: str,
        kind: StageErrorKind,
        stage: str | None = None,
        session_id: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.kind = kind
        self.stage = stage
        self.session_id = session_id
        self.recoverable = recoverable
