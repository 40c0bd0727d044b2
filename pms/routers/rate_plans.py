"""
价格方案路由
"""
from typing import List
from fastapi import APIRouter, Depends

from pms.models.schemas import (
    RatePlanCreate, RatePlanRateInput, RatePlanRateResponse, RatePlanResponse,
    RatePlanUpdate, RateUpdate
)
from pms.routers.common import get_operations, to_http_exception, unwrap
from pms.errors import NotFoundError, PmsError
from pms.security.auth import get_current_actor
from pms.security.context import ActorContext
from pms.services.operations import BookingOperations

router = APIRouter(prefix="/rate-plans", tags=["价格方案"])


def _detail(ops: BookingOperations, rate_plan_id: int) -> RatePlanResponse:
    try:
        return RatePlanResponse(**ops.rate_plans.get_rate_plan_detail(rate_plan_id))
    except PmsError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[RatePlanResponse])
def list_rate_plans(
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取价格方案列表"""
    return [_detail(ops, plan.id) for plan in ops.rate_plans.get_rate_plans()]


@router.post("", response_model=RatePlanResponse, status_code=201)
def create_rate_plan(
    data: RatePlanCreate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """创建价格方案"""
    plan = unwrap(ops.create_rate_plan(data, actor))
    return _detail(ops, plan.id)


@router.get("/{rate_plan_id}", response_model=RatePlanResponse)
def get_rate_plan(
    rate_plan_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取价格方案详情"""
    return _detail(ops, rate_plan_id)


@router.put("/{rate_plan_id}", response_model=RatePlanResponse)
def update_rate_plan(
    rate_plan_id: int,
    data: RatePlanUpdate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """更新价格方案"""
    unwrap(ops.update_rate_plan(rate_plan_id, data, actor))
    return _detail(ops, rate_plan_id)


@router.delete("/{rate_plan_id}")
def delete_rate_plan(
    rate_plan_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除价格方案"""
    unwrap(ops.delete_rate_plan(rate_plan_id, actor))
    return {"message": "价格方案已删除", "rate_plan_id": rate_plan_id}


@router.post("/{rate_plan_id}/rates", response_model=RatePlanRateResponse, status_code=201)
def add_rate(
    rate_plan_id: int,
    data: RatePlanRateInput,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """新增房型价格"""
    return unwrap(ops.add_rate(rate_plan_id, data.room_type_id, data.rate, actor))


@router.get("/{rate_plan_id}/rates/{room_type_id}", response_model=RatePlanRateResponse)
def get_rate(
    rate_plan_id: int,
    room_type_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """查询房型价格"""
    if ops.rate_plans.get_rate_plan(rate_plan_id) is None:
        raise to_http_exception(NotFoundError("RatePlan", rate_plan_id))
    rate = unwrap(ops.get_rate(rate_plan_id, room_type_id))
    return RatePlanRateResponse(room_type_id=room_type_id, rate=rate)


@router.put("/{rate_plan_id}/rates/{room_type_id}", response_model=RatePlanRateResponse)
def update_rate(
    rate_plan_id: int,
    room_type_id: int,
    data: RateUpdate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """修改房型价格"""
    return unwrap(ops.update_rate(rate_plan_id, room_type_id, data.rate, actor))


@router.delete("/{rate_plan_id}/rates/{room_type_id}")
def remove_rate(
    rate_plan_id: int,
    room_type_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除房型价格"""
    unwrap(ops.remove_rate(rate_plan_id, room_type_id, actor))
    return {"message": "房型价格已删除", "rate_plan_id": rate_plan_id, "room_type_id": room_type_id}
