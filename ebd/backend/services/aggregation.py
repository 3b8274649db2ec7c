# ebd/backend/services/aggregation.py
"""
Statistics shown on the dashboards, class cards and the report history.

Every function here is a pure transform of the (already scoped) collections
and is simply re-run after each reload. Numeric fields are coerced so that
missing or malformed values count as zero.
"""

import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.entities import AttendanceRecord, SchoolClass, Student
from ..models.mapper import coerce_decimal, coerce_int

logger = logging.getLogger(__name__)

PT_BR_MONTHS = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]
PT_BR_MONTHS_SHORT = [
    "jan.", "fev.", "mar.", "abr.", "mai.", "jun.",
    "jul.", "ago.", "set.", "out.", "nov.", "dez.",
]


# --- Result models ---

class SummaryTotals(BaseModel):
    tithes: Decimal = Decimal("0")
    presence: int = 0
    absent: int = 0
    visitors: int = 0
    bibles: int = 0
    classes: int = 0


class ClassStats(BaseModel):
    """One row per class; feeds both the dashboard charts and the class cards."""
    class_id: str
    name: str
    teacher: str = ""
    category: str = ""
    student_count: int = 0
    lessons: int = 0
    presence: int = 0
    tithes: Decimal = Decimal("0")
    bibles: int = 0
    visitors: int = 0
    absent: int = 0


class TimelinePoint(BaseModel):
    date: str
    label: str = Field(description="dd/MM as shown on the chart axis.")
    presence: int
    tithes: Decimal
    visitors: int


class TeacherSummary(BaseModel):
    lessons: int = 0
    tithes: Decimal = Decimal("0")
    average_presence: float = 0.0
    visitors: int = 0
    active_students: int = 0


class WeekGroup(BaseModel):
    week: int
    label: str
    tithes: Decimal = Decimal("0")
    presence: int = 0
    records: List[AttendanceRecord] = Field(default_factory=list)


class MonthGroup(BaseModel):
    month: int
    name: str
    tithes: Decimal = Decimal("0")
    presence: int = 0
    weeks: List[WeekGroup] = Field(default_factory=list)


class QuarterGroup(BaseModel):
    quarter: int
    tithes: Decimal = Decimal("0")
    presence: int = 0
    months: List[MonthGroup] = Field(default_factory=list)


class YearGroup(BaseModel):
    year: int
    tithes: Decimal = Decimal("0")
    presence: int = 0
    quarters: List[QuarterGroup] = Field(default_factory=list)


# --- Helpers ---

def _presence(record: AttendanceRecord) -> int:
    return len(record.present_student_ids or [])


def _tithe(record: AttendanceRecord) -> Decimal:
    return coerce_decimal(record.tithe_amount)


def _roster_sizes(students: Iterable[Student]) -> Counter:
    return Counter(s.class_id for s in students if s.class_id)


def _absent(record: AttendanceRecord, roster_size: int) -> int:
    return max(0, roster_size - _presence(record))


def parse_lesson_date(value: str) -> Optional[date]:
    """Lesson dates are stored as YYYY-MM-DD, sometimes with a time part."""
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def format_currency(amount) -> str:
    value = coerce_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"R$ {value}"


# --- Totals ---

def total_tithes(records: Iterable[AttendanceRecord]) -> Decimal:
    return sum((_tithe(r) for r in records), Decimal("0"))


def total_presence(records: Iterable[AttendanceRecord]) -> int:
    return sum(_presence(r) for r in records)


def total_absences(records: Iterable[AttendanceRecord], students: Iterable[Student]) -> int:
    """
    Absentees per lesson are the class's *current* roster minus the present
    ids, never below zero. Roster changes therefore move historical figures.
    Records without a class have no roster and count no absences.
    """
    roster = _roster_sizes(students)
    return sum(_absent(r, roster[r.class_id]) for r in records if r.class_id)


def summary_totals(records: List[AttendanceRecord], students: List[Student], classes: List[SchoolClass]) -> SummaryTotals:
    return SummaryTotals(
        tithes=total_tithes(records),
        presence=total_presence(records),
        absent=total_absences(records, students),
        visitors=sum(coerce_int(r.visitor_count) for r in records),
        bibles=sum(coerce_int(r.bible_count) for r in records),
        classes=len(classes),
    )


def per_class_breakdown(classes: List[SchoolClass], records: List[AttendanceRecord], students: List[Student]) -> List[ClassStats]:
    """One row per class, in class order. Classes without lessons get zeros."""
    roster = _roster_sizes(students)
    by_class: Dict[str, List[AttendanceRecord]] = {}
    for record in records:
        by_class.setdefault(record.class_id, []).append(record)

    rows = []
    for school_class in classes:
        class_records = by_class.get(school_class.id, [])
        size = roster[school_class.id]
        rows.append(ClassStats(
            class_id=school_class.id,
            name=school_class.name,
            teacher=school_class.teacher,
            category=school_class.category,
            student_count=size,
            lessons=len(class_records),
            presence=total_presence(class_records),
            tithes=total_tithes(class_records),
            bibles=sum(coerce_int(r.bible_count) for r in class_records),
            visitors=sum(coerce_int(r.visitor_count) for r in class_records),
            absent=sum(_absent(r, size) for r in class_records),
        ))
    return rows


# --- Birthdays ---

def week_window(today: date) -> Tuple[date, date]:
    """Sunday through Saturday of the week containing `today`."""
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def birth_month_day(birth_date: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Month and day of a stored birth date, read in UTC.

    A bare YYYY-MM-DD means midnight UTC, so its own month/day come back. A
    timestamp without an offset is taken as local time and then converted.
    """
    if not birth_date:
        return None
    text = str(birth_date).strip()
    try:
        if len(text) == 10:
            parsed = date.fromisoformat(text)
            return parsed.month, parsed.day
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable birth date '{birth_date}'.")
        return None
    if moment.tzinfo is None:
        moment = moment.astimezone()
    moment = moment.astimezone(timezone.utc)
    return moment.month, moment.day


def _birthday_in_year(year: int, month: int, day: int) -> date:
    # Feb 29 in a common year rolls over to Mar 1.
    return date(year, month, 1) + timedelta(days=day - 1)


def birthdays_this_week(students: List[Student], today: Optional[date] = None) -> List[Student]:
    """
    Students whose birthday, placed in the current year, falls in this
    Sunday-to-Saturday week. Sorted by day of month only; the sort is stable,
    so ties keep roster order even across a month boundary.
    """
    today = today or date.today()
    start, end = week_window(today)

    matches = []
    for student in students:
        month_day = birth_month_day(student.birth_date)
        if month_day is None:
            continue
        candidate = _birthday_in_year(today.year, *month_day)
        if start <= candidate <= end:
            matches.append((month_day[1], student))

    matches.sort(key=lambda item: item[0])
    return [student for _, student in matches]


def birthday_label(student: Student) -> str:
    month_day = birth_month_day(student.birth_date)
    if month_day is None:
        return ""
    month, day = month_day
    return f"{day:02d} {PT_BR_MONTHS_SHORT[month - 1]}"


# --- Single-class (teacher) dashboard ---

def class_timeline(records: List[AttendanceRecord], class_id: str, limit: int = 10) -> List[TimelinePoint]:
    """The last `limit` lessons of one class, oldest first."""
    class_records = [r for r in records if r.class_id == class_id]
    class_records.sort(key=lambda r: parse_lesson_date(r.date) or date.min)
    points = []
    for record in class_records[-limit:]:
        lesson_day = parse_lesson_date(record.date)
        points.append(TimelinePoint(
            date=record.date,
            label=lesson_day.strftime("%d/%m") if lesson_day else record.date,
            presence=_presence(record),
            tithes=_tithe(record),
            visitors=coerce_int(record.visitor_count),
        ))
    return points


def teacher_summary(records: List[AttendanceRecord], students: List[Student]) -> TeacherSummary:
    presence = total_presence(records)
    average = round(presence / len(records), 1) if records else 0.0
    return TeacherSummary(
        lessons=len(records),
        tithes=total_tithes(records),
        average_presence=average,
        visitors=sum(coerce_int(r.visitor_count) for r in records),
        active_students=sum(1 for s in students if s.active),
    )


# --- Report history ---

def week_of_month(day: date) -> int:
    return math.ceil(day.day / 7)


def report_history(records: List[AttendanceRecord]) -> List[YearGroup]:
    """
    Groups lessons year -> quarter -> month -> week-of-month with tithe and
    presence subtotals. Years, quarters and months run newest first, weeks
    run in order, and lessons inside a week run newest first.
    """
    tree: Dict[int, Dict[int, Dict[int, Dict[int, List[Tuple[date, AttendanceRecord]]]]]] = {}
    for record in records:
        lesson_day = parse_lesson_date(record.date)
        if lesson_day is None:
            logger.warning(f"Record {record.id} has an unparseable date '{record.date}'; left out of the history.")
            continue
        quarter = (lesson_day.month - 1) // 3 + 1
        (tree.setdefault(lesson_day.year, {})
             .setdefault(quarter, {})
             .setdefault(lesson_day.month, {})
             .setdefault(week_of_month(lesson_day), [])
             .append((lesson_day, record)))

    years = []
    for year in sorted(tree, reverse=True):
        year_group = YearGroup(year=year)
        for quarter in sorted(tree[year], reverse=True):
            quarter_group = QuarterGroup(quarter=quarter)
            for month in sorted(tree[year][quarter], reverse=True):
                month_group = MonthGroup(month=month, name=PT_BR_MONTHS[month - 1])
                for week in sorted(tree[year][quarter][month]):
                    entries = sorted(tree[year][quarter][month][week], key=lambda e: e[0], reverse=True)
                    week_records = [record for _, record in entries]
                    month_group.weeks.append(WeekGroup(
                        week=week,
                        label=f"{week}ª Semana",
                        tithes=total_tithes(week_records),
                        presence=total_presence(week_records),
                        records=week_records,
                    ))
                month_group.tithes = sum((w.tithes for w in month_group.weeks), Decimal("0"))
                month_group.presence = sum(w.presence for w in month_group.weeks)
                quarter_group.months.append(month_group)
            quarter_group.tithes = sum((m.tithes for m in quarter_group.months), Decimal("0"))
            quarter_group.presence = sum(m.presence for m in quarter_group.months)
            year_group.quarters.append(quarter_group)
        year_group.tithes = sum((q.tithes for q in year_group.quarters), Decimal("0"))
        year_group.presence = sum(q.presence for q in year_group.quarters)
        years.append(year_group)
    return years
