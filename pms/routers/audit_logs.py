"""
审计日志路由（仅管理员）
"""
from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query

from pms.errors import NotFoundError
from pms.models.ontology import AuditAction
from pms.models.schemas import AuditLogResponse
from pms.routers.common import get_audit_service, to_http_exception
from pms.security.auth import require_admin
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService

router = APIRouter(prefix="/audit-logs", tags=["审计日志"])


@router.get("", response_model=List[AuditLogResponse])
def list_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    username: Optional[str] = None,
    action: Optional[AuditAction] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(require_admin)
):
    """查询审计日志"""
    return service.get_logs(
        entity_type=entity_type, entity_id=entity_id, username=username,
        action=action, start=start, end=end, limit=limit, offset=offset
    )


@router.get("/entity/{entity_type}/{entity_id}", response_model=List[AuditLogResponse])
def get_entity_history(
    entity_type: str,
    entity_id: int,
    limit: int = Query(default=100, ge=1, le=1000),
    service: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(require_admin)
):
    """获取实体变更历史"""
    return service.get_by_entity(entity_type, entity_id, limit)


@router.get("/{log_id}", response_model=AuditLogResponse)
def get_audit_log(
    log_id: int,
    service: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(require_admin)
):
    """获取单条审计日志"""
    log = service.get_log(log_id)
    if not log:
        raise to_http_exception(NotFoundError("AuditLog", log_id))
    return log
