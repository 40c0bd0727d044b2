"""
预订管理路由
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query

from pms.models.ontology import ReservationStatus
from pms.models.schemas import (
    ReservationCreate, ReservationUpdate, ReservationCancel, ReservationResponse
)
from pms.routers.common import get_operations, unwrap
from pms.security.auth import get_current_actor
from pms.security.context import ActorContext
from pms.services.operations import BookingOperations

router = APIRouter(prefix="/reservations", tags=["预订管理"])


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[ReservationStatus] = None,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取预订列表"""
    return unwrap(ops.get_reservations_by_status(status))


@router.get("/date-range", response_model=List[ReservationResponse])
def list_reservations_by_date_range(
    start_date: date = Query(...),
    end_date: date = Query(...),
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取入住或离店日期在区间内的预订"""
    return unwrap(ops.get_reservations_by_date_range(start_date, end_date))


@router.get("/arrivals/today", response_model=List[ReservationResponse])
def list_today_arrivals(
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取今日预抵"""
    return unwrap(ops.get_today_arrivals())


@router.get("/guest/{guest_id}", response_model=List[ReservationResponse])
def list_reservations_by_guest(
    guest_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取客人的预订"""
    return unwrap(ops.get_reservations_by_guest(guest_id))


@router.get("/number/{reservation_no}", response_model=ReservationResponse)
def get_reservation_by_no(
    reservation_no: str,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """根据预订号获取预订"""
    return unwrap(ops.get_reservation_by_no(reservation_no))


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取预订详情"""
    return unwrap(ops.get_reservation(reservation_id))


@router.post("", response_model=ReservationResponse, status_code=201)
def create_reservation(
    data: ReservationCreate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """创建预订"""
    return unwrap(ops.create_reservation(data, actor))


@router.put("/{reservation_id}", response_model=ReservationResponse)
def update_reservation(
    reservation_id: int,
    data: ReservationUpdate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """更新预订"""
    return unwrap(ops.update_reservation(reservation_id, data, actor))


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
def check_in(
    reservation_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """办理入住"""
    return unwrap(ops.check_in(reservation_id, actor))


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse)
def check_out(
    reservation_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """办理退房"""
    return unwrap(ops.check_out(reservation_id, actor))


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    data: Optional[ReservationCancel] = None,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """取消预订"""
    reason = data.reason if data else None
    return unwrap(ops.cancel_reservation(reservation_id, actor, reason))
