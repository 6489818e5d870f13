"""Aggregate statistics over a window of work-attendance records."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class AttendanceRow:
    employee_name: str
    status: str
    first_check_in: datetime | None  # local time
    minutes: int


@dataclass
class EmployeeStats:
    total_days: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0
    total_minutes: int = 0

    @property
    def total_hours(self) -> float:
        return round(self.total_minutes / 60, 2)


@dataclass
class AttendanceAnalytics:
    total_records: int
    status_counts: dict[str, int]
    status_percentages: dict[str, float]
    check_in_hours: dict[str, int]
    peak_check_in_hour: str | None
    late_count: int
    late_percentage: float
    avg_work_hours: float
    employee_stats: dict[str, EmployeeStats] = field(default_factory=dict)


def normalise_status(status: str | None) -> str:
    value = (status or "").strip().lower()
    if value.startswith("not check"):
        return "absent"
    return value or "absent"


def summarise_attendance(rows: list[AttendanceRow]) -> AttendanceAnalytics:
    total = len(rows)
    status_counts: Counter[str] = Counter(normalise_status(r.status) for r in rows)

    check_in_hours: Counter[str] = Counter(
        f"{r.first_check_in.hour:02d}:00" for r in rows if r.first_check_in is not None
    )
    peak = max(sorted(check_in_hours), key=check_in_hours.__getitem__) if check_in_hours else None

    worked = [r.minutes for r in rows if r.minutes > 0]
    avg_hours = round(sum(worked) / len(worked) / 60, 2) if worked else 0.0

    stats: dict[str, EmployeeStats] = {}
    for row in rows:
        emp = stats.setdefault(row.employee_name, EmployeeStats())
        emp.total_days += 1
        emp.total_minutes += row.minutes
        status = normalise_status(row.status)
        if status == "present":
            emp.present += 1
        elif status == "late":
            emp.late += 1
        else:
            emp.absent += 1

    late = status_counts.get("late", 0)
    return AttendanceAnalytics(
        total_records=total,
        status_counts=dict(status_counts),
        status_percentages={
            k: round(v / total * 100, 1) for k, v in status_counts.items()
        } if total else {},
        check_in_hours=dict(sorted(check_in_hours.items())),
        peak_check_in_hour=peak,
        late_count=late,
        late_percentage=round(late / total * 100, 1) if total else 0.0,
        avg_work_hours=avg_hours,
        employee_stats=stats,
    )
