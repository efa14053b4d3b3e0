"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, admin, gyms, members, classes,
    attendance, payments, tokens, reports
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Admin: users, audit trail, dashboard
router.include_router(admin.router)

# Gyms, members and the class schedule
router.include_router(gyms.router)
router.include_router(members.router)
router.include_router(classes.router)

# Token-consuming flows
router.include_router(attendance.router)
router.include_router(payments.router)
router.include_router(tokens.router)

# Exports
router.include_router(reports.router)
