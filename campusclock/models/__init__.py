"""Import every model so ``Base.metadata`` sees all tables."""

from campusclock.models.class_attendance import ClassAttendanceRecord  # noqa: F401
from campusclock.models.employee import AttendanceRecord, Employee  # noqa: F401
from campusclock.models.timetable import (LessonPeriod, Room,  # noqa: F401
                                          SchoolClass, Subject, Term,
                                          TimetableSlot)
from campusclock.models.timetable_settings import TimetableSettings  # noqa: F401
from campusclock.models.user import User  # noqa: F401
