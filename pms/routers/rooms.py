"""
房间管理路由
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pms.database import get_db
from pms.errors import NotFoundError, PmsError
from pms.models.ontology import RoomStatus
from pms.models.schemas import (
    RoomCreate, RoomResponse, RoomStatusUpdate, RoomTypeCreate, RoomTypeResponse,
    RoomTypeUpdate, RoomUpdate
)
from pms.routers.common import get_audit_service, to_http_exception
from pms.security.auth import get_current_actor
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.availability_service import AvailabilityService
from pms.services.room_service import RoomService

router = APIRouter(prefix="/rooms", tags=["房间管理"])


# ============== 房型 ==============

@router.get("/types", response_model=List[RoomTypeResponse])
def list_room_types(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取所有房型"""
    return RoomService(db).get_room_types()


@router.post("/types", response_model=RoomTypeResponse, status_code=201)
def create_room_type(
    data: RoomTypeCreate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """创建房型"""
    service = RoomService(db, audit=audit)
    try:
        return service.create_room_type(data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.get("/types/{room_type_id}", response_model=RoomTypeResponse)
def get_room_type(
    room_type_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取房型详情"""
    room_type = RoomService(db).get_room_type(room_type_id)
    if not room_type:
        raise to_http_exception(NotFoundError("RoomType", room_type_id))
    return room_type


@router.put("/types/{room_type_id}", response_model=RoomTypeResponse)
def update_room_type(
    room_type_id: int,
    data: RoomTypeUpdate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """更新房型"""
    service = RoomService(db, audit=audit)
    try:
        return service.update_room_type(room_type_id, data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.delete("/types/{room_type_id}")
def delete_room_type(
    room_type_id: int,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除房型"""
    service = RoomService(db, audit=audit)
    try:
        service.delete_room_type(room_type_id, actor)
    except PmsError as e:
        raise to_http_exception(e)
    return {"message": "房型已删除", "room_type_id": room_type_id}


# ============== 房间 ==============

@router.get("/available", response_model=List[RoomResponse])
def list_available_rooms(
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    room_type_id: Optional[int] = None,
    guest_count: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取区间内可预订的房间"""
    service = AvailabilityService(db)
    try:
        return service.get_available_rooms(check_in_date, check_out_date, room_type_id, guest_count)
    except PmsError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[RoomResponse])
def list_rooms(
    status: Optional[RoomStatus] = None,
    room_type_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取房间列表"""
    return RoomService(db).get_rooms(status, room_type_id)


@router.post("", response_model=RoomResponse, status_code=201)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """创建房间"""
    service = RoomService(db, audit=audit)
    try:
        return service.create_room(data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.get("/number/{room_number}", response_model=RoomResponse)
def get_room_by_number(
    room_number: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """根据房间号获取房间"""
    room = RoomService(db).get_room_by_number(room_number)
    if not room:
        raise to_http_exception(NotFoundError("Room", room_number))
    return room


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取房间详情"""
    room = RoomService(db).get_room(room_id)
    if not room:
        raise to_http_exception(NotFoundError("Room", room_id))
    return room


@router.put("/{room_id}", response_model=RoomResponse)
def update_room(
    room_id: int,
    data: RoomUpdate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """更新房间信息"""
    service = RoomService(db, audit=audit)
    try:
        return service.update_room(room_id, data, actor)
    except PmsError as e:
        raise to_http_exception(e)


@router.delete("/{room_id}")
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除房间"""
    service = RoomService(db, audit=audit)
    try:
        service.delete_room(room_id, actor)
    except PmsError as e:
        raise to_http_exception(e)
    return {"message": "房间已删除", "room_id": room_id}


@router.put("/{room_id}/status", response_model=RoomResponse)
def update_room_status(
    room_id: int,
    data: RoomStatusUpdate,
    db: Session = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
    actor: ActorContext = Depends(get_current_actor)
):
    """修改房间状态"""
    service = RoomService(db, audit=audit)
    try:
        return service.update_room_status(room_id, data.status, actor)
    except PmsError as e:
        raise to_http_exception(e)
