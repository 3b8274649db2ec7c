# ebd/backend/models/mapper.py
"""
Translation between store rows and in-memory entities.

Rows coming back from the store are not consistent about key casing: older
rows and some views use camelCase (``classId``), the current schema uses
snake_case (``class_id``). Readers accept both; writers always emit
snake_case.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .entities import (
    AttendanceRecord, Category, Profile, SchoolClass, Student, Teacher
)

# Store-generated ids are UUIDs; client placeholders are much shorter.
MIN_PERSISTED_ID_LENGTH = 30


def _pick(row: Dict[str, Any], snake: str, camel: str, default=None):
    value = row.get(snake)
    if value is None:
        value = row.get(camel)
    return default if value is None else value


def _opt_str(value) -> Optional[str]:
    return None if value is None else str(value)


def coerce_int(value) -> int:
    """Missing or non-numeric values count as zero."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def coerce_decimal(value) -> Decimal:
    """Missing or non-numeric values count as zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def submission_id(entity_id: Optional[str], persisted: Optional[bool] = None) -> Optional[str]:
    """
    Returns the id to send with an upsert, or None to let the store generate one.

    An explicit ``persisted`` marker decides on its own. Without it, only ids of
    at least MIN_PERSISTED_ID_LENGTH characters are treated as real.
    """
    if persisted is not None:
        return entity_id if persisted and entity_id else None
    if entity_id and len(entity_id) >= MIN_PERSISTED_ID_LENGTH:
        return entity_id
    return None


def _with_id(payload: Dict[str, Any], entity_id: Optional[str], persisted: Optional[bool]) -> Dict[str, Any]:
    row_id = submission_id(entity_id, persisted)
    if row_id is not None:
        payload["id"] = row_id
    return payload


# --- Readers ---

def read_teacher(row: Dict[str, Any]) -> Teacher:
    return Teacher(
        id=str(row["id"]),
        name=row.get("name") or "",
        phone=row.get("phone") or "",
        active=bool(_pick(row, "active", "isActive", True)),
        email=row.get("email") or None,
    )


def read_class(row: Dict[str, Any]) -> SchoolClass:
    return SchoolClass(
        id=str(row["id"]),
        name=row.get("name") or "",
        teacher=row.get("teacher") or "",
        category=row.get("category") or "",
        teacher_id=_opt_str(_pick(row, "teacher_id", "teacherId")),
        category_id=_opt_str(_pick(row, "category_id", "categoryId")),
    )


def read_category(row: Dict[str, Any]) -> Category:
    return Category(id=str(row["id"]), name=row.get("name") or "", color=row.get("color"))


def read_student(row: Dict[str, Any]) -> Student:
    return Student(
        id=str(row["id"]),
        name=row.get("name") or "",
        class_id=_opt_str(_pick(row, "class_id", "classId")),
        birth_date=_opt_str(_pick(row, "birth_date", "birthDate")),
        active=bool(_pick(row, "active", "isActive", True)),
    )


def read_attendance_record(row: Dict[str, Any]) -> AttendanceRecord:
    present = _pick(row, "present_student_ids", "presentStudentIds", [])
    return AttendanceRecord(
        id=str(row["id"]),
        date=str(row.get("date") or ""),
        class_id=_opt_str(_pick(row, "class_id", "classId")),
        present_student_ids=[str(student_id) for student_id in present],
        bible_count=coerce_int(_pick(row, "bible_count", "bibleCount")),
        tithe_amount=coerce_decimal(_pick(row, "tithe_amount", "titheAmount")),
        visitor_count=coerce_int(_pick(row, "visitor_count", "visitorCount")),
        lesson_theme=_pick(row, "lesson_theme", "lessonTheme", ""),
    )


def read_profile(row: Dict[str, Any]) -> Profile:
    return Profile(
        id=str(row["id"]),
        email=row.get("email") or "",
        full_name=_pick(row, "full_name", "fullName"),
        phone=row.get("phone"),
        role=row.get("role") or "TEACHER",
        created_at=_opt_str(_pick(row, "created_at", "createdAt")),
    )


# --- Writers (always snake_case) ---

def teacher_payload(teacher: Teacher, persisted: Optional[bool] = None) -> Dict[str, Any]:
    payload = {
        "name": teacher.name,
        "phone": teacher.phone,
        "active": teacher.active,
        "email": teacher.email,
    }
    return _with_id(payload, teacher.id, persisted)


def class_payload(school_class: SchoolClass, persisted: Optional[bool] = None) -> Dict[str, Any]:
    payload = {
        "name": school_class.name,
        "teacher": school_class.teacher,
        "category": school_class.category,
    }
    # The id columns only exist once the link back-fill has run.
    if school_class.teacher_id:
        payload["teacher_id"] = school_class.teacher_id
    if school_class.category_id:
        payload["category_id"] = school_class.category_id
    return _with_id(payload, school_class.id, persisted)


def category_payload(category: Category, persisted: Optional[bool] = None) -> Dict[str, Any]:
    payload = {"name": category.name, "color": category.color}
    return _with_id(payload, category.id, persisted)


def student_payload(student: Student, persisted: Optional[bool] = None) -> Dict[str, Any]:
    payload = {
        "name": student.name,
        "class_id": student.class_id,
        "birth_date": student.birth_date,
        "active": student.active,
    }
    return _with_id(payload, student.id, persisted)


def attendance_payload(record: AttendanceRecord, persisted: Optional[bool] = None) -> Dict[str, Any]:
    payload = {
        "date": record.date,
        "class_id": record.class_id,
        "present_student_ids": list(record.present_student_ids),
        "bible_count": record.bible_count,
        # numeric column; a string keeps the exact cents through JSON
        "tithe_amount": str(record.tithe_amount),
        "visitor_count": record.visitor_count,
        "lesson_theme": record.lesson_theme,
    }
    return _with_id(payload, record.id, persisted)
