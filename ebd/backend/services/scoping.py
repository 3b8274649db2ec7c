from typing import List, Tuple

from ..models.entities import AttendanceRecord, Role, SchoolClass, Student, UserSession, Workspace


def scope(
    session: UserSession,
    classes: List[SchoolClass],
    students: List[Student],
    records: List[AttendanceRecord],
) -> Tuple[List[SchoolClass], List[Student], List[AttendanceRecord]]:
    """
    Derives the slices of the full collections the session may see.

    ADMIN sees everything. A TEACHER sees only their assigned class; without a
    resolvable class all three slices are empty.
    """
    if session.role == Role.ADMIN:
        return classes, students, records

    class_id = session.assigned_class_id
    if not class_id:
        return [], [], []

    return (
        [c for c in classes if c.id == class_id],
        [s for s in students if s.class_id == class_id],
        [r for r in records if r.class_id == class_id],
    )


def scope_workspace(session: UserSession, workspace: Workspace) -> Workspace:
    """Applies `scope` to a whole reload. Teacher and category lists are ADMIN-only."""
    classes, students, records = scope(session, workspace.classes, workspace.students, workspace.records)
    if session.role == Role.ADMIN:
        return Workspace(
            classes=classes,
            students=students,
            teachers=workspace.teachers,
            categories=workspace.categories,
            records=records,
        )
    return Workspace(classes=classes, students=students, records=records)
