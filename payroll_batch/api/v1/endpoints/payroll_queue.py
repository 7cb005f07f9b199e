"""
Payroll queue endpoints: submit a run, poll a job, read queue statistics.
"""
import time
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from payroll_batch.api.deps import RequestContext, get_db, get_payroll_service, get_request_context
from payroll_batch.exceptions import InvalidPayrollRequestError
from payroll_batch.jobs.payroll_job import PayrollRunRequest
from payroll_batch.models.db.enums import AuditAction, ExecutionMode, JobState
from payroll_batch.models.schemas.base import ResponseBase
from payroll_batch.models.schemas.payroll_queue import PayrollRunCreate, PayrollSubmission
from payroll_batch.services.payroll_queue_service import PayrollQueueService
from payroll_batch.services.payroll_repository import record_audit
from payroll_batch.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

AUDIT_MODULE = "Payroll Queue"


def _audit_submission(db: Session, ctx: RequestContext, payload: PayrollRunCreate, job_id: str, mode: str) -> None:
    try:
        record_audit(
            db,
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            user_name=ctx.user_name,
            action=AuditAction.SUBMIT,
            module=AUDIT_MODULE,
            details={"month": payload.month, "year": payload.year, "job_id": job_id, "mode": mode},
        )
    except Exception as e:
        db.rollback()
        logger.warning("Payroll queue audit write failed", job_id=job_id, error=str(e), request_id=ctx.request_id)


@router.post(
    "/process",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ResponseBase,
    summary="Submit a payroll run"
)
def process_payroll(
    payload: PayrollRunCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: PayrollQueueService = Depends(get_payroll_service),
    db: Session = Depends(get_db)
) -> JSONResponse:
    """Queue a payroll run, or run it inline when the queue is down.

    Returns 202 with the job id to poll. In synchronous mode the run has already
    finished and its result is included.
    """
    start_time = time.time()
    if not payload.month or payload.year is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="month and year are required")

    request = PayrollRunRequest(
        tenant_id=ctx.tenant_id,
        month=payload.month,
        year=payload.year,
        employee_ids=list(payload.employee_ids),
        initiated_by=ctx.user_id,
        initiated_by_name=ctx.user_name,
        priority=payload.priority,
    )
    try:
        submission = service.submit_payroll_run(request)
    except InvalidPayrollRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if submission.mode is ExecutionMode.ASYNC:
        message = "Payroll processing queued. Poll the job endpoint for progress."
    elif submission.error:
        message = "Payroll processed synchronously and failed"
    else:
        message = "Payroll processed synchronously (queue unavailable)"

    _audit_submission(db, ctx, payload, submission.job_id, submission.mode.value)

    log_performance(
        operation="submit_payroll_run",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"mode": submission.mode.value, "job_id": submission.job_id}
    )
    body = PayrollSubmission(message=message, **submission.to_dict())
    response = ResponseBase(success=True, message=message, data=body.model_dump(mode="json"))
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=response.model_dump(mode="json"))


@router.get(
    "/job/{job_id}",
    response_model=ResponseBase,
    summary="Get payroll job status"
)
def get_job_status(
    job_id: str,
    service: PayrollQueueService = Depends(get_payroll_service)
) -> ResponseBase:
    record = service.get_job_status(job_id)
    if record.status is JobState.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return ResponseBase(success=True, data=record.to_dict())


@router.get(
    "/stats",
    response_model=ResponseBase,
    summary="Get payroll queue statistics"
)
def get_queue_stats(
    service: PayrollQueueService = Depends(get_payroll_service)
) -> ResponseBase:
    return ResponseBase(success=True, data=service.get_queue_stats())
