# ebd/backend/models/entities.py

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"


class Teacher(BaseModel):
    """
    A teacher on the roster, mapping to the 'teachers' table.
    """
    id: str
    name: str = Field(..., description="Classes reference their teacher by this name.")
    phone: str = ""
    active: bool = True
    email: Optional[str] = Field(None, description="Used to match a logged-in TEACHER to the roster.")


class SchoolClass(BaseModel):
    """
    A Sunday-school class, mapping to the 'classes' table.
    """
    id: str
    name: str
    teacher: str = Field("", description="Name of the teacher, not their id.")
    category: str = Field("", description="Name of the category, not its id.")
    teacher_id: Optional[str] = Field(None, description="Filled by the link back-fill; wins over the name when set.")
    category_id: Optional[str] = Field(None, description="Filled by the link back-fill; wins over the name when set.")


class Category(BaseModel):
    id: str
    name: str
    color: Optional[str] = None


class Student(BaseModel):
    id: str
    name: str
    class_id: Optional[str] = Field(None, description="FK into classes.")
    birth_date: Optional[str] = None
    active: bool = True


class AttendanceRecord(BaseModel):
    """
    One lesson of one class on one date.
    """
    id: str
    date: str
    class_id: Optional[str] = None
    present_student_ids: List[str] = Field(default_factory=list, description="Never validated against the class roster.")
    bible_count: int = 0
    tithe_amount: Decimal = Decimal("0")
    visitor_count: int = 0
    lesson_theme: str = ""


class Profile(BaseModel):
    """
    Authoritative role record of an authenticated identity, mapping to the 'profiles' table.
    """
    id: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    created_at: Optional[str] = None


class Identity(BaseModel):
    """What the auth API tells us about the caller."""
    id: str
    email: str
    user_metadata: dict = Field(default_factory=dict)


class AuthSession(BaseModel):
    """Tokens handed out by the auth API after a successful sign-in or refresh."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user: Identity


class UserSession(BaseModel):
    """
    Derived on every authentication event, never persisted.
    """
    email: str
    role: Role
    name: str
    teacher_id: Optional[str] = None
    assigned_class_id: Optional[str] = None


class Workspace(BaseModel):
    """The five collections of one full reload."""
    classes: List[SchoolClass] = Field(default_factory=list)
    students: List[Student] = Field(default_factory=list)
    teachers: List[Teacher] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    records: List[AttendanceRecord] = Field(default_factory=list)
