# ebd/backend/api/utilities/errors.py

from fastapi import HTTPException, status

from ...db.store_client import AuthError, StoreConnectionError, StoreError
from ...services.errors import (
    AuthorizationError, ReferentialIntegrityError, ServiceError,
    SessionResolutionError, ValidationError
)


def to_http_exception(e: Exception) -> HTTPException:
    """
    Translates store and service exceptions into the HTTP error the client sees.
    """
    if isinstance(e, ReferentialIntegrityError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if isinstance(e, SessionResolutionError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(e, StoreConnectionError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if isinstance(e, AuthError) or (isinstance(e, StoreError) and e.status_code == status.HTTP_401_UNAUTHORIZED):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(e, StoreError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": str(e), "code": e.code})
    if isinstance(e, ServiceError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An unexpected server error occurred.")
