"""
Domain error -> HTTPException mapping shared by the routers.
"""

from fastapi import HTTPException, status

from app.errors import (
    CredentialError,
    CredentialErrorKind,
    SessionError,
    SessionErrorKind,
    StageError,
    StageErrorKind,
)

CREDENTIAL_STATUS = {
    CredentialErrorKind.NOT_CONNECTED: status.HTTP_404_NOT_FOUND,
    CredentialErrorKind.INVALID_GRANT: status.HTTP_400_BAD_REQUEST,
    CredentialErrorKind.PROVIDER_UNREACHABLE: status.HTTP_502_BAD_GATEWAY,
    CredentialErrorKind.REFRESH_FAILED: status.HTTP_502_BAD_GATEWAY,
    CredentialErrorKind.NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
}

SESSION_STATUS = {
    SessionErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SessionErrorKind.EXPIRED: status.HTTP_410_GONE,
    SessionErrorKind.SEALED: status.HTTP_409_CONFLICT,
}

STAGE_STATUS = {
    StageErrorKind.PREREQUISITE_MISSING: status.HTTP_409_CONFLICT,
    StageErrorKind.MODEL_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    StageErrorKind.INVALID_ARTIFACT: status.HTTP_502_BAD_GATEWAY,
}


def http_error(e: CredentialError | SessionError | StageError) -> HTTPException:
    if isinstance(e, CredentialError):
        code = CREDENTIAL_STATUS[e.kind]
    elif isinstance(e, SessionError):
        code = SESSION_STATUS[e.kind]
    else:
        code = STAGE_STATUS[e.kind]
    return HTTPException(status_code=code, detail={"error": e.kind.value, "message": str(e)})
