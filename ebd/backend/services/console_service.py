import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from ..db.store_client import StoreClient, StoreError
from ..models.entities import (
    AttendanceRecord, Category, Role, SchoolClass, Student, Teacher, UserSession, Workspace
)
from ..models.mapper import (
    attendance_payload, category_payload, class_payload, read_attendance_record,
    read_category, read_class, read_student, read_teacher, student_payload, teacher_payload
)
from .errors import AuthorizationError, ReferentialIntegrityError, ValidationError

logger = logging.getLogger(__name__)

CLASSES = "classes"
STUDENTS = "students"
TEACHERS = "teachers"
CATEGORIES = "categories"
RECORDS = "attendance_records"


def _require_admin(session: UserSession, action: str):
    if session.role != Role.ADMIN:
        logger.warning(f"'{session.email}' ({session.role.value}) tried to {action}.")
        raise AuthorizationError(f"Only administrators can {action}.")


def _require_class_in_scope(session: UserSession, class_id: Optional[str]):
    if session.role == Role.ADMIN:
        return
    if not session.assigned_class_id or class_id != session.assigned_class_id:
        logger.warning(f"'{session.email}' tried to touch class '{class_id}' outside their scope.")
        raise AuthorizationError("This class is outside your assigned class.")


def _require_fields(message: str, *values):
    if any(value is None or (isinstance(value, str) and not value.strip()) for value in values):
        raise ValidationError(message)


def class_references_teacher(school_class: SchoolClass, teacher: Teacher) -> bool:
    if school_class.teacher_id:
        return school_class.teacher_id == teacher.id
    return school_class.teacher == teacher.name


def class_references_category(school_class: SchoolClass, category: Category) -> bool:
    if school_class.category_id:
        return school_class.category_id == category.id
    return school_class.category == category.name


class ConsoleService:
    """
    Turns console form submissions into store calls.

    Every successful mutation is followed by a full reload of the five
    collections instead of patching local state, so what the caller gets back
    is always what the store holds.
    """

    def __init__(self, store: StoreClient):
        self.store = store

    # --- Loading ---

    @staticmethod
    def _read_rows(table: str, rows: List[dict], reader: Callable[[dict], BaseModel]) -> List[BaseModel]:
        items = []
        for row in rows:
            try:
                items.append(reader(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed row in '{table}': {e}")
        return items

    async def _fetch(self, table: str, reader: Callable[[dict], BaseModel]) -> List[BaseModel]:
        try:
            rows = await self.store.select(table, "*")
        except StoreError as e:
            logger.error(f"Loading '{table}' failed; continuing without it: {e}", exc_info=True)
            return []
        return self._read_rows(table, rows, reader)

    async def _fetch_strict(self, table: str, reader: Callable[[dict], BaseModel]) -> List[BaseModel]:
        """Same as `_fetch`, but a failed load raises instead of coming back empty."""
        rows = await self.store.select(table, "*")
        return self._read_rows(table, rows, reader)

    async def _classes_for_check(self, workspace: Workspace) -> List[SchoolClass]:
        fresh = await self._fetch_strict(CLASSES, read_class)
        known = {c.id for c in fresh}
        return fresh + [c for c in workspace.classes if c.id not in known]

    async def load_workspace(self) -> Workspace:
        """Fetches the five collections independently; a failed one stays empty."""
        classes, students, teachers, records, categories = await asyncio.gather(
            self._fetch(CLASSES, read_class),
            self._fetch(STUDENTS, read_student),
            self._fetch(TEACHERS, read_teacher),
            self._fetch(RECORDS, read_attendance_record),
            self._fetch(CATEGORIES, read_category),
        )
        return Workspace(classes=classes, students=students, teachers=teachers, categories=categories, records=records)

    # --- Saving ---

    async def save_class(self, session: UserSession, school_class: SchoolClass, persisted: bool) -> Workspace:
        _require_admin(session, "manage classes")
        _require_fields("Fill in all required fields.", school_class.name, school_class.teacher, school_class.category)
        await self.store.upsert(CLASSES, class_payload(school_class, persisted))
        logger.info(f"Class '{school_class.name}' saved by '{session.email}'.")
        return await self.load_workspace()

    async def save_teacher(self, session: UserSession, teacher: Teacher, persisted: bool) -> Workspace:
        _require_admin(session, "manage teachers")
        _require_fields("Name and phone are required.", teacher.name, teacher.phone)
        await self.store.upsert(TEACHERS, teacher_payload(teacher, persisted))
        logger.info(f"Teacher '{teacher.name}' saved by '{session.email}'.")
        return await self.load_workspace()

    async def save_category(self, session: UserSession, category: Category, persisted: bool) -> Workspace:
        _require_admin(session, "manage categories")
        _require_fields("The category name is required.", category.name)
        await self.store.upsert(CATEGORIES, category_payload(category, persisted))
        logger.info(f"Category '{category.name}' saved by '{session.email}'.")
        return await self.load_workspace()

    async def save_student(self, session: UserSession, student: Student, persisted: bool, workspace: Workspace) -> Workspace:
        _require_fields("Name and class are required.", student.name, student.class_id)
        _require_class_in_scope(session, student.class_id)
        if persisted:
            existing = next((s for s in workspace.students if s.id == student.id), None)
            if existing is not None:
                _require_class_in_scope(session, existing.class_id)
        await self.store.upsert(STUDENTS, student_payload(student, persisted))
        logger.info(f"Student '{student.name}' saved by '{session.email}'.")
        return await self.load_workspace()

    async def save_attendance(self, session: UserSession, record: AttendanceRecord, persisted: bool, workspace: Workspace) -> Workspace:
        _require_fields("Please enter the lesson theme.", record.lesson_theme)
        _require_fields("A class is required.", record.class_id, record.date)
        _require_class_in_scope(session, record.class_id)
        if persisted:
            existing = next((r for r in workspace.records if r.id == record.id), None)
            if existing is not None:
                _require_class_in_scope(session, existing.class_id)
        await self.store.upsert(RECORDS, attendance_payload(record, persisted))
        logger.info(f"Attendance of class '{record.class_id}' on {record.date} saved by '{session.email}'.")
        return await self.load_workspace()

    # --- Deleting ---

    async def _delete(self, table: str, entity_id: str, session: UserSession) -> Workspace:
        await self.store.delete(table, "id", entity_id)
        logger.info(f"Deleted '{entity_id}' from '{table}' on behalf of '{session.email}'.")
        return await self.load_workspace()

    async def delete_class(self, session: UserSession, class_id: str) -> Workspace:
        _require_admin(session, "manage classes")
        return await self._delete(CLASSES, class_id, session)

    async def delete_teacher(self, session: UserSession, teacher_id: str, workspace: Workspace) -> Workspace:
        """
        Refused while a class still points at the teacher.

        Teachers and classes are read again from the store, together with
        `workspace`; if either load fails the StoreError propagates and nothing
        is deleted.
        """
        _require_admin(session, "manage teachers")
        teachers = await self._fetch_strict(TEACHERS, read_teacher) + workspace.teachers
        classes = await self._classes_for_check(workspace)
        teacher = next((t for t in teachers if t.id == teacher_id), None)
        if teacher is not None:
            linked = [c.name for c in classes if class_references_teacher(c, teacher)]
            if linked:
                logger.warning(f"Refusing to delete teacher '{teacher.name}': still linked to {linked}.")
                raise ReferentialIntegrityError(
                    f"Teacher '{teacher.name}' still teaches: {', '.join(linked)}. Reassign those classes first."
                )
        return await self._delete(TEACHERS, teacher_id, session)

    async def delete_category(self, session: UserSession, category_id: str, workspace: Workspace) -> Workspace:
        """Refused while a class still uses the category. Reads the store like `delete_teacher`."""
        _require_admin(session, "manage categories")
        categories = await self._fetch_strict(CATEGORIES, read_category) + workspace.categories
        classes = await self._classes_for_check(workspace)
        category = next((c for c in categories if c.id == category_id), None)
        if category is not None:
            linked = [c.name for c in classes if class_references_category(c, category)]
            if linked:
                logger.warning(f"Refusing to delete category '{category.name}': still used by {linked}.")
                raise ReferentialIntegrityError(
                    f"Category '{category.name}' is still used by: {', '.join(linked)}."
                )
        return await self._delete(CATEGORIES, category_id, session)

    async def delete_student(self, session: UserSession, student_id: str, workspace: Workspace) -> Workspace:
        student = next((s for s in workspace.students if s.id == student_id), None)
        if session.role != Role.ADMIN:
            _require_class_in_scope(session, student.class_id if student else None)
        return await self._delete(STUDENTS, student_id, session)

    async def delete_record(self, session: UserSession, record_id: str, workspace: Workspace) -> Workspace:
        record = next((r for r in workspace.records if r.id == record_id), None)
        if session.role != Role.ADMIN:
            _require_class_in_scope(session, record.class_id if record else None)
        return await self._delete(RECORDS, record_id, session)
