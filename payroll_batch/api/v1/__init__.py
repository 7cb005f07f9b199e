"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import payroll_queue

api_router = APIRouter()

api_router.include_router(
    payroll_queue.router,
    prefix="/payroll/queue",
    tags=["payroll-queue"]
)
