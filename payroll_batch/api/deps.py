"""
Dependencies for database sessions, the payroll queue service and request context.
"""
from dataclasses import dataclass
from typing import Generator, Optional
from fastapi import Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from payroll_batch.database import SessionLocal
from payroll_batch.services.payroll_queue_service import PayrollQueueService
from payroll_batch.utils import get_logger

logger = get_logger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def get_payroll_service(request: Request) -> PayrollQueueService:
    """Payroll queue service created during application startup."""
    service = getattr(request.app.state, "payroll_queue_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Payroll queue not available")
    return service


@dataclass
class RequestContext:
    tenant_id: str
    user_id: Optional[str]
    user_name: Optional[str]
    request_id: Optional[str]


def get_request_context(
    request: Request,
    x_tenant_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> RequestContext:
    """
    Tenant and acting user supplied by the upstream gateway.

    Raises:
        HTTPException: 400 if the tenant header is missing
    """
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-ID header is required")
    return RequestContext(
        tenant_id=x_tenant_id.strip(),
        user_id=x_user_id,
        user_name=x_user_name,
        request_id=getattr(request.state, "request_id", None),
    )
