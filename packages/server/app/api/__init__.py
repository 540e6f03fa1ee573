"""
API Router

Identity under /auth, the organization registry under /organizations and the
question box under /questions.
"""

from fastapi import APIRouter

from . import auth, organizations, questions

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
router.include_router(questions.router, prefix="/questions", tags=["Questions"])
