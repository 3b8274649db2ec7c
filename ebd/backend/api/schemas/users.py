# ebd/backend/api/schemas/users.py
from pydantic import BaseModel, Field
from typing import Optional

from ...models.entities import Role


class UserCreateRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=6)
    role: Role = Role.TEACHER


class UserUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    role: Role


class BackfillResponse(BaseModel):
    teacher_links: int
    category_links: int
