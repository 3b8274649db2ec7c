import logging
from typing import List, Optional, Tuple

from ..config.config import settings
from ..db.store_client import AuthError, StoreClient, StoreConnectionError, StoreError
from ..models.entities import Identity, Role, SchoolClass, Teacher, UserSession
from ..models.mapper import read_class, read_teacher
from .errors import SessionResolutionError

logger = logging.getLogger(__name__)

MISSING_PROFILE_NAME = "Usuário Sem Perfil"
DEFAULT_PROFILE_NAME = "Usuário"


def match_assigned_class(teacher: Teacher, classes: List[SchoolClass]) -> Optional[str]:
    """
    Returns the id of the one class taught by `teacher`, or None.

    A class linked by id is matched by id only; unlinked classes fall back to
    the teacher's name. Zero or several matches both mean "no assignment",
    since a teacher can own at most one class.
    """
    matches = [
        c for c in classes
        if (c.teacher_id == teacher.id if c.teacher_id else c.teacher == teacher.name)
    ]
    if len(matches) == 1:
        return matches[0].id
    if matches:
        logger.warning(f"Teacher '{teacher.name}' is linked to {len(matches)} classes; leaving the session without a class.")
    else:
        logger.warning(f"No class found for teacher '{teacher.name}'.")
    return None


class SessionResolver:
    """
    Builds a UserSession for an authenticated identity.

    The profile table is authoritative for the role. The teacher roster is
    only consulted to find a TEACHER's id and class and never changes the role.
    """

    def __init__(self, store: StoreClient, missing_profile_policy: Optional[str] = None):
        self.store = store
        self.missing_profile_policy = (missing_profile_policy or settings.MISSING_PROFILE_POLICY).upper()

    async def resolve(self, identity: Identity) -> UserSession:
        try:
            profile = await self._fetch_profile(identity)
            if profile is None:
                return self._session_without_profile(identity)

            try:
                role = Role(profile.get("role"))
            except ValueError as e:
                raise SessionResolutionError(f"Profile of '{identity.email}' carries an unknown role.") from e

            name = profile.get("full_name") or DEFAULT_PROFILE_NAME
            if role == Role.ADMIN:
                return UserSession(email=identity.email, role=role, name=name)

            teacher_id, class_id = await self._resolve_teacher_assignment(identity.email)
            return UserSession(
                email=identity.email,
                role=role,
                name=name,
                teacher_id=teacher_id,
                assigned_class_id=class_id,
            )
        except (StoreConnectionError, AuthError) as e:
            logger.error(f"Session resolution for '{identity.email}' failed: {e}", exc_info=True)
            raise SessionResolutionError("Could not establish a session. Please log in again.") from e

    async def _fetch_profile(self, identity: Identity) -> Optional[dict]:
        try:
            return await self.store.select_one("profiles", "role, full_name", id=identity.id)
        except (StoreConnectionError, AuthError):
            raise
        except StoreError as e:
            # A rejected profile lookup is handled like a missing profile.
            logger.error(f"Profile lookup for '{identity.email}' was rejected: {e} (code={e.code})")
            return None

    def _session_without_profile(self, identity: Identity) -> UserSession:
        if self.missing_profile_policy == "DENY":
            logger.warning(f"No profile for '{identity.email}'; access denied by policy.")
            raise SessionResolutionError("No access profile is registered for this account.")

        logger.warning(f"No profile for '{identity.email}'; granting ADMIN by the bootstrap fallback.")
        name = identity.user_metadata.get("full_name") or MISSING_PROFILE_NAME
        return UserSession(email=identity.email, role=Role.ADMIN, name=name)

    async def _resolve_teacher_assignment(self, email: str) -> Tuple[Optional[str], Optional[str]]:
        try:
            teacher_row = await self.store.select_one("teachers", "*", email=email)
        except (StoreConnectionError, AuthError):
            raise
        except StoreError as e:
            logger.warning(f"Teacher roster lookup for '{email}' failed: {e}")
            return None, None
        if teacher_row is None:
            logger.warning(f"TEACHER '{email}' is not on the teacher roster.")
            return None, None
        teacher = read_teacher(teacher_row)

        try:
            class_rows = await self.store.select("classes", "*")
        except (StoreConnectionError, AuthError):
            raise
        except StoreError as e:
            logger.warning(f"Class lookup for teacher '{teacher.name}' failed: {e}")
            return teacher.id, None

        classes = [read_class(row) for row in class_rows]
        return teacher.id, match_assigned_class(teacher, classes)
