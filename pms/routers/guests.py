"""
客人管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pms.database import get_db
from pms.errors import NotFoundError, PmsError
from pms.models.schemas import GuestCreate, GuestResponse, GuestUpdate
from pms.routers.common import get_audit_service, to_http_exception
from pms.security.auth import get_current_actor
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.guest_service import GuestService

router = APIRouter(prefix="/guests", tags=["客人管理"])


@router.get("", response_model=List[GuestResponse])
def list_guests(
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取客人列表"""
    return GuestService(db).get_guests(search, limit)


@router.post("", response_model=GuestResponse, status_code=201)
def create_guest(
    data: GuestCreate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """创建客人"""
    service = GuestService(db, audit=audit)
    try:
        return service.create_guest(data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.get("/email/{email}", response_model=GuestResponse)
def get_guest_by_email(
    email: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """根据邮箱获取客人"""
    guest = GuestService(db).get_guest_by_email(email)
    if not guest:
        raise to_http_exception(NotFoundError("Guest", email))
    return guest


@router.get("/{guest_id}", response_model=GuestResponse)
def get_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取客人详情"""
    guest = GuestService(db).get_guest(guest_id)
    if not guest:
        raise to_http_exception(NotFoundError("Guest", guest_id))
    return guest


@router.put("/{guest_id}", response_model=GuestResponse)
def update_guest(
    guest_id: int,
    data: GuestUpdate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """更新客人信息"""
    service = GuestService(db, audit=audit)
    try:
        return service.update_guest(guest_id, data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.delete("/{guest_id}")
def delete_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除客人"""
    service = GuestService(db, audit=audit)
    try:
        service.delete_guest(guest_id, actor)
    except PmsError as e:
        raise to_http_exception(e)
    return {"message": "客人已删除", "guest_id": guest_id}
