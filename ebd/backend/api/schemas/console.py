# ebd/backend/api/schemas/console.py
import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from ...models.entities import AttendanceRecord, Category, SchoolClass, Student, Teacher
from ...services.aggregation import ClassStats, SummaryTotals, TeacherSummary, TimelinePoint

# Required fields are checked by the service, so forms default to empty values
# and a missing name comes back as a readable 422 instead of a schema error.


class ClassForm(BaseModel):
    name: str = ""
    teacher: str = Field("", description="Teacher name as shown on the roster.")
    category: str = Field("", description="Category name.")
    teacher_id: Optional[str] = None
    category_id: Optional[str] = None

    def to_entity(self, entity_id: str = "") -> SchoolClass:
        return SchoolClass(id=entity_id, **self.model_dump())


class TeacherForm(BaseModel):
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    active: bool = True

    def to_entity(self, entity_id: str = "") -> Teacher:
        return Teacher(id=entity_id, **self.model_dump())


class CategoryForm(BaseModel):
    name: str = ""
    color: Optional[str] = None

    def to_entity(self, entity_id: str = "") -> Category:
        return Category(id=entity_id, **self.model_dump())


class StudentForm(BaseModel):
    name: str = ""
    class_id: Optional[str] = None
    birth_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    active: bool = True

    def to_entity(self, entity_id: str = "") -> Student:
        return Student(id=entity_id, **self.model_dump())


class AttendanceForm(BaseModel):
    date: str = Field(default_factory=lambda: datetime.date.today().isoformat(), description="Lesson date, YYYY-MM-DD.")
    class_id: Optional[str] = None
    present_student_ids: List[str] = Field(default_factory=list)
    bible_count: int = 0
    tithe_amount: Decimal = Decimal("0")
    visitor_count: int = 0
    lesson_theme: str = ""

    def to_entity(self, entity_id: str = "") -> AttendanceRecord:
        return AttendanceRecord(id=entity_id, **self.model_dump())


class BirthdayEntry(BaseModel):
    id: str
    name: str
    class_id: Optional[str] = None
    label: str = Field(..., description="Day and short month, e.g. '05 mar.'")


class DashboardResponse(BaseModel):
    totals: SummaryTotals
    formatted_tithes: str
    classes: List[ClassStats]
    birthdays: List[BirthdayEntry]
    # Only for a TEACHER with an assigned class
    timeline: Optional[List[TimelinePoint]] = None
    teacher_summary: Optional[TeacherSummary] = None
