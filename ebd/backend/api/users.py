import logging
from typing import List

from fastapi import APIRouter, Depends, Request, Response, status

from ..db.store_client import StoreError
from ..models.entities import Profile, UserSession
from ..services.errors import ServiceError
from ..services.user_access_service import UserAccessService
from .auth import get_admin_session
from .dependencies import get_user_access_service
from .schemas.users import UserCreateRequest, UserUpdateRequest
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["User Access"])


@router.get("", response_model=List[Profile], summary="List access profiles, newest first")
@limiter.limit("30/minute")
async def list_users(request: Request, admin: UserSession = Depends(get_admin_session), service: UserAccessService = Depends(get_user_access_service)):
    try:
        return await service.list_profiles()
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e


@router.post("", response_model=Profile, status_code=status.HTTP_201_CREATED, summary="Invite a user with a role")
@limiter.limit("10/minute")
async def create_user(request: Request, create_request: UserCreateRequest, admin: UserSession = Depends(get_admin_session), service: UserAccessService = Depends(get_user_access_service)):
    logger.info(f"'{admin.email}' invites '{create_request.email}' as {create_request.role.value}.")
    try:
        return await service.create_user(create_request.full_name, create_request.email, create_request.password, create_request.role)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e


@router.put("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Change a user's name or role")
@limiter.limit("30/minute")
async def update_user(request: Request, profile_id: str, update_request: UserUpdateRequest, admin: UserSession = Depends(get_admin_session), service: UserAccessService = Depends(get_user_access_service)):
    try:
        await service.update_profile(profile_id, update_request.full_name, update_request.role)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a user's access profile")
@limiter.limit("30/minute")
async def delete_user(request: Request, profile_id: str, admin: UserSession = Depends(get_admin_session), service: UserAccessService = Depends(get_user_access_service)):
    try:
        await service.delete_profile(profile_id)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
