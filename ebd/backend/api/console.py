from typing import List

from fastapi import APIRouter, Depends, Request, status

from ..db.store_client import StoreError
from ..models.entities import Role, UserSession, Workspace
from ..services.aggregation import (
    ClassStats, YearGroup, birthday_label, birthdays_this_week, class_timeline, format_currency,
    per_class_breakdown, report_history, summary_totals, teacher_summary
)
from ..services.console_service import ConsoleService
from ..services.errors import ServiceError
from ..services.scoping import scope_workspace
from .auth import get_current_session
from .dependencies import get_console_service
from .schemas.console import (
    AttendanceForm, BirthdayEntry, CategoryForm, ClassForm, DashboardResponse, StudentForm, TeacherForm
)
from .utilities.errors import to_http_exception
from .utilities.limiter import limiter

router = APIRouter(prefix="/console", tags=["Console"])


async def _scoped_workspace(session: UserSession, service: ConsoleService) -> Workspace:
    return scope_workspace(session, await service.load_workspace())


# === READ VIEWS ===

@router.get("/workspace", response_model=Workspace, summary="Reload the collections visible to the caller")
@limiter.limit("60/minute")
async def get_workspace(request: Request, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    return await _scoped_workspace(session, service)


@router.get("/dashboard", response_model=DashboardResponse, summary="Totals, per-class breakdown and this week's birthdays")
@limiter.limit("60/minute")
async def get_dashboard(request: Request, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    workspace = await _scoped_workspace(session, service)
    totals = summary_totals(workspace.records, workspace.students, workspace.classes)
    birthdays = [
        BirthdayEntry(id=s.id, name=s.name, class_id=s.class_id, label=birthday_label(s))
        for s in birthdays_this_week(workspace.students)
    ]
    dashboard = DashboardResponse(
        totals=totals,
        formatted_tithes=format_currency(totals.tithes),
        classes=per_class_breakdown(workspace.classes, workspace.records, workspace.students),
        birthdays=birthdays,
    )
    if session.role == Role.TEACHER and session.assigned_class_id:
        dashboard.timeline = class_timeline(workspace.records, session.assigned_class_id)
        dashboard.teacher_summary = teacher_summary(workspace.records, workspace.students)
    return dashboard


@router.get("/classes/cards", response_model=List[ClassStats], summary="Per-class card figures")
@limiter.limit("60/minute")
async def get_class_cards(request: Request, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    workspace = await _scoped_workspace(session, service)
    return per_class_breakdown(workspace.classes, workspace.records, workspace.students)


@router.get("/reports", response_model=List[YearGroup], summary="Lesson history grouped by year, quarter, month and week")
@limiter.limit("30/minute")
async def get_reports(request: Request, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    workspace = await _scoped_workspace(session, service)
    return report_history(workspace.records)


# === CLASSES ===

@router.post("/classes", response_model=Workspace, status_code=status.HTTP_201_CREATED, summary="Create a class")
@limiter.limit("30/minute")
async def create_class(request: Request, form: ClassForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_class(session, form.to_entity(), persisted=False)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.put("/classes/{class_id}", response_model=Workspace, summary="Edit a class")
@limiter.limit("30/minute")
async def update_class(request: Request, class_id: str, form: ClassForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_class(session, form.to_entity(class_id), persisted=True)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.delete("/classes/{class_id}", response_model=Workspace, summary="Delete a class")
@limiter.limit("30/minute")
async def delete_class(request: Request, class_id: str, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.delete_class(session, class_id)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


# === TEACHERS ===

@router.post("/teachers", response_model=Workspace, status_code=status.HTTP_201_CREATED, summary="Add a teacher to the roster")
@limiter.limit("30/minute")
async def create_teacher(request: Request, form: TeacherForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_teacher(session, form.to_entity(), persisted=False)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.put("/teachers/{teacher_id}", response_model=Workspace, summary="Edit a teacher")
@limiter.limit("30/minute")
async def update_teacher(request: Request, teacher_id: str, form: TeacherForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_teacher(session, form.to_entity(teacher_id), persisted=True)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.delete("/teachers/{teacher_id}", response_model=Workspace, summary="Delete a teacher no class refers to")
@limiter.limit("30/minute")
async def delete_teacher(request: Request, teacher_id: str, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.delete_teacher(session, teacher_id, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


# === CATEGORIES ===

@router.post("/categories", response_model=Workspace, status_code=status.HTTP_201_CREATED, summary="Create a category")
@limiter.limit("30/minute")
async def create_category(request: Request, form: CategoryForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_category(session, form.to_entity(), persisted=False)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.put("/categories/{category_id}", response_model=Workspace, summary="Edit a category")
@limiter.limit("30/minute")
async def update_category(request: Request, category_id: str, form: CategoryForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        workspace = await service.save_category(session, form.to_entity(category_id), persisted=True)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.delete("/categories/{category_id}", response_model=Workspace, summary="Delete a category no class uses")
@limiter.limit("30/minute")
async def delete_category(request: Request, category_id: str, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.delete_category(session, category_id, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


# === STUDENTS ===

@router.post("/students", response_model=Workspace, status_code=status.HTTP_201_CREATED, summary="Enroll a student")
@limiter.limit("60/minute")
async def create_student(request: Request, form: StudentForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.save_student(session, form.to_entity(), False, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.put("/students/{student_id}", response_model=Workspace, summary="Edit a student")
@limiter.limit("60/minute")
async def update_student(request: Request, student_id: str, form: StudentForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.save_student(session, form.to_entity(student_id), True, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.delete("/students/{student_id}", response_model=Workspace, summary="Remove a student")
@limiter.limit("30/minute")
async def delete_student(request: Request, student_id: str, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.delete_student(session, student_id, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


# === ATTENDANCE RECORDS ===

@router.post("/records", response_model=Workspace, status_code=status.HTTP_201_CREATED, summary="Record a lesson's attendance")
@limiter.limit("60/minute")
async def create_record(request: Request, form: AttendanceForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.save_attendance(session, form.to_entity(), False, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.put("/records/{record_id}", response_model=Workspace, summary="Edit a lesson's attendance")
@limiter.limit("60/minute")
async def update_record(request: Request, record_id: str, form: AttendanceForm, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.save_attendance(session, form.to_entity(record_id), True, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)


@router.delete("/records/{record_id}", response_model=Workspace, summary="Delete a lesson's attendance")
@limiter.limit("30/minute")
async def delete_record(request: Request, record_id: str, session: UserSession = Depends(get_current_session), service: ConsoleService = Depends(get_console_service)):
    try:
        current = await service.load_workspace()
        workspace = await service.delete_record(session, record_id, current)
    except (ServiceError, StoreError) as e:
        raise to_http_exception(e) from e
    return scope_workspace(session, workspace)
