"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from campusclock.api.v1.endpoints import (attendance, auth, catalog,
                                          class_attendance, employees,
                                          lesson_periods, reports, settings,
                                          terms, timetable, users)

api_router = APIRouter()

# Auth (login, refresh, password) and user management
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(employees.router)

# Work attendance, class check-in, reconciliation
api_router.include_router(attendance.router)
api_router.include_router(class_attendance.router)

# Timetabling
api_router.include_router(terms.router)
api_router.include_router(lesson_periods.router)
api_router.include_router(catalog.router)
api_router.include_router(timetable.router)
api_router.include_router(settings.router)

# Reports, analytics, health, status
api_router.include_router(reports.router)
