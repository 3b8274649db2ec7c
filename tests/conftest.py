# tests/conftest.py
import asyncio
import copy
import sys
from unittest.mock import AsyncMock

import pytest

from ebd.backend.db.store_client import StoreError
from ebd.backend.models.entities import Role, UserSession

# This is the crucial fix for Windows asyncio issues with pytest.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


# --- Sample store contents ---
# Two classes: C1 "Juniores" taught by Ana (T1), C2 "Adultos" taught by Paulo (T2).
# Marta (T3) and the category K3 are not referenced by any class.

SAMPLE_ROWS = {
    "classes": [
        {"id": "C1", "name": "Juniores", "teacher": "Ana", "category": "Kids"},
        {"id": "C2", "name": "Adultos", "teacher": "Paulo", "category": "Adults"},
    ],
    "teachers": [
        {"id": "T1", "name": "Ana", "phone": "11 9999-0001", "active": True, "email": "ana@ebd.org"},
        {"id": "T2", "name": "Paulo", "phone": "11 9999-0002", "active": True, "email": "paulo@ebd.org"},
        {"id": "T3", "name": "Marta", "phone": "11 9999-0003", "active": True, "email": "marta@ebd.org"},
    ],
    "categories": [
        {"id": "K1", "name": "Kids", "color": "#f59e0b"},
        {"id": "K2", "name": "Adults", "color": "#3b82f6"},
        {"id": "K3", "name": "Unused", "color": None},
    ],
    "students": [
        {"id": "S1", "name": "Lucas", "class_id": "C1", "birth_date": "2012-03-10", "active": True},
        {"id": "S2", "name": "Maria", "classId": "C1", "birthDate": "2011-07-22", "active": True},
        {"id": "S3", "name": "João", "class_id": "C2", "birth_date": "1980-03-12", "active": True},
    ],
    "attendance_records": [
        {"id": "R1", "date": "2024-03-03", "class_id": "C1", "present_student_ids": ["S1", "S2"],
         "bible_count": 2, "tithe_amount": "10.50", "visitor_count": 1, "lesson_theme": "Criação"},
        {"id": "R2", "date": "2024-03-10", "classId": "C1", "presentStudentIds": ["S1"],
         "bibleCount": 1, "titheAmount": 5, "visitorCount": 0, "lessonTheme": "Noé"},
        {"id": "R3", "date": "2024-03-10", "class_id": "C2", "present_student_ids": ["S3"],
         "bible_count": 1, "tithe_amount": "20.00", "visitor_count": 2, "lesson_theme": "Salmos"},
    ],
}


@pytest.fixture
def store_rows():
    """A fresh, mutable copy of the sample store contents."""
    return copy.deepcopy(SAMPLE_ROWS)


@pytest.fixture
def make_store(store_rows):
    """
    Builds an AsyncMock store whose `select` answers from `store_rows`.
    Tables named in `failing` raise a StoreError instead.
    """
    def _make(rows=None, failing=()):
        data = store_rows if rows is None else rows
        store = AsyncMock()

        async def select(table, columns="*", filters=None, order=None):
            if table in failing:
                raise StoreError("permission denied for table " + table, code="42501", status_code=403)
            return [dict(row) for row in data.get(table, [])]

        store.select.side_effect = select
        store.upsert.return_value = []
        store.insert.return_value = []
        store.update.return_value = []
        store.delete.return_value = None
        return store

    return _make


# --- Sessions ---

@pytest.fixture
def admin_session() -> UserSession:
    return UserSession(email="admin@ebd.org", role=Role.ADMIN, name="Secretaria")


@pytest.fixture
def teacher_session() -> UserSession:
    """Ana, teaching C1."""
    return UserSession(email="ana@ebd.org", role=Role.TEACHER, name="Ana", teacher_id="T1", assigned_class_id="C1")


@pytest.fixture
def unassigned_teacher_session() -> UserSession:
    return UserSession(email="marta@ebd.org", role=Role.TEACHER, name="Marta", teacher_id="T3")
