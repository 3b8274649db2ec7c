import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..db.store_client import AuthClient, StoreClient, StoreError
from ..models.entities import Profile, Role
from ..models.mapper import read_profile
from .errors import ServiceError, ValidationError

logger = logging.getLogger(__name__)

PROFILES = "profiles"
# unique_violation: a database trigger already created the profile
DUPLICATE_KEY_CODE = "23505"
# undefined_table
MISSING_TABLE_CODE = "42P01"


class UserAccessService:
    """
    Manages the profile registry that decides who is ADMIN and who is TEACHER.
    """

    def __init__(self, store: StoreClient, auth: AuthClient):
        self.store = store
        self.auth = auth

    async def list_profiles(self) -> List[Profile]:
        try:
            rows = await self.store.select(PROFILES, "*", order="created_at.desc")
        except StoreError as e:
            if e.code == MISSING_TABLE_CODE:
                raise ServiceError("The 'profiles' table was not found in the store.") from e
            raise

        profiles = []
        for row in rows:
            try:
                profiles.append(read_profile(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed profile row {row.get('id')!r}: {e}")
        return profiles

    async def create_user(self, full_name: str, email: str, password: str, role: Role) -> Profile:
        """Registers the account with the auth API, then its access profile."""
        if not email or not password:
            raise ValidationError("Email and password are required.")

        identity = await self.auth.sign_up(email, password, {"full_name": full_name, "role": role.value})
        profile = Profile(
            id=identity.id,
            email=email,
            full_name=full_name,
            role=role,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            await self.store.insert(PROFILES, profile.model_dump(mode="json", exclude={"phone"}))
        except StoreError as e:
            if e.code != DUPLICATE_KEY_CODE:
                logger.error(f"Account '{email}' was created but its profile was not: {e}", exc_info=True)
                raise
            logger.info(f"Profile for '{email}' already existed.")
        logger.info(f"User '{email}' invited as {role.value}.")
        return profile

    async def update_profile(self, profile_id: str, full_name: Optional[str], role: Role) -> None:
        await self.store.update(PROFILES, {"full_name": full_name, "role": role.value}, "id", profile_id)
        logger.info(f"Profile '{profile_id}' updated to {role.value}.")

    async def delete_profile(self, profile_id: str) -> None:
        """Removes the access record only; the auth account itself stays."""
        await self.store.delete(PROFILES, "id", profile_id)
        logger.info(f"Profile '{profile_id}' deleted.")
