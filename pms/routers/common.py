"""
路由公共依赖与错误映射
"""
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from pms.database import get_db
from pms.engine.clock import Clock, system_clock
from pms.engine.result import OperationResult
from pms.errors import ErrorKind, PmsError
from pms.services.audit_service import AuditService
from pms.services.operations import BookingOperations

# 业务错误 -> HTTP 状态码（未列出的均为 409）
ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.RATE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
}


def to_http_exception(error: PmsError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS.get(error.error_code, status.HTTP_409_CONFLICT),
        detail=error.to_dict()
    )


def unwrap(result: OperationResult):
    """成功时返回值，失败时抛出对应的 HTTPException"""
    if not result.success:
        raise to_http_exception(result.error)
    return result.value


def get_clock() -> Clock:
    return system_clock


def get_audit_service(db: Session = Depends(get_db),
                      clock: Clock = Depends(get_clock)) -> AuditService:
    return AuditService(db, clock=clock)


def get_operations(db: Session = Depends(get_db),
                   audit: AuditService = Depends(get_audit_service),
                   clock: Clock = Depends(get_clock)) -> BookingOperations:
    return BookingOperations(db, audit=audit, clock=clock)
