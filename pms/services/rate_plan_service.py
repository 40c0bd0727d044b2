"""
价格方案服务 - 本体操作层
管理 RatePlan 及其价格表（房型 -> 夜价）
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pms.engine.audit import AuditEntity, snapshot
from pms.errors import (
    DomainValidationError, DuplicateEntityError, DuplicateRateError,
    InUseError, NotFoundError, RateNotFoundError
)
from pms.models.ontology import RatePlan, RatePlanRate, Reservation, RoomType
from pms.models.schemas import RatePlanCreate, RatePlanUpdate
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """金额统一保留两位小数（四舍五入）"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class RatePlanService:
    """价格方案服务"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService()

    # ========== 查询 ==========

    def get_rate_plan(self, rate_plan_id: int) -> Optional[RatePlan]:
        """获取单个价格方案"""
        return self.db.query(RatePlan).filter(RatePlan.id == rate_plan_id).first()

    def get_rate_plan_by_name(self, name: str) -> Optional[RatePlan]:
        return self.db.query(RatePlan).filter(RatePlan.name == name).first()

    def get_rate_plans(self) -> List[RatePlan]:
        """获取价格方案列表"""
        return self.db.query(RatePlan).order_by(RatePlan.name).all()

    def get_rates(self, rate_plan_id: int) -> List[RatePlanRate]:
        """获取价格方案的价格表"""
        return self.db.query(RatePlanRate).filter(
            RatePlanRate.rate_plan_id == rate_plan_id
        ).order_by(RatePlanRate.room_type_id).all()

    def _find_rate(self, rate_plan_id: int, room_type_id: int) -> Optional[RatePlanRate]:
        return self.db.query(RatePlanRate).filter(
            RatePlanRate.rate_plan_id == rate_plan_id,
            RatePlanRate.room_type_id == room_type_id
        ).first()

    def get_rate(self, rate_plan_id: int, room_type_id: int) -> Decimal:
        """
        获取价格方案中某房型的夜价

        Raises:
            RateNotFoundError: 方案中没有该房型的价格
        """
        rate = self._find_rate(rate_plan_id, room_type_id)
        if rate is None:
            raise RateNotFoundError(rate_plan_id, room_type_id)
        return rate.rate

    def get_rate_plan_detail(self, rate_plan_id: int) -> dict:
        """获取价格方案详情（包含价格表）"""
        plan = self._require_plan(rate_plan_id)
        return {
            "id": plan.id,
            "name": plan.name,
            "description": plan.description,
            "rates": [
                {"room_type_id": r.room_type_id, "rate": r.rate}
                for r in self.get_rates(plan.id)
            ],
        }

    def _require_plan(self, rate_plan_id: int) -> RatePlan:
        plan = self.get_rate_plan(rate_plan_id)
        if not plan:
            raise NotFoundError("RatePlan", rate_plan_id)
        return plan

    def _require_room_type(self, room_type_id: int) -> RoomType:
        room_type = self.db.query(RoomType).filter(RoomType.id == room_type_id).first()
        if not room_type:
            raise NotFoundError("RoomType", room_type_id)
        return room_type

    def _snapshot(self, plan: RatePlan) -> dict:
        return snapshot(AuditEntity.RATE_PLAN, plan, rates=self.rates_by_room_type(plan.id))

    @staticmethod
    def _validate_rate(rate: Decimal) -> Decimal:
        if rate is None or Decimal(rate) < 0:
            raise DomainValidationError("rate", "价格不能为负数")
        return to_money(rate)

    # ========== 价格方案 ==========

    def create_rate_plan(self, data: RatePlanCreate, actor: ActorContext) -> RatePlan:
        """创建价格方案（可带初始价格表）"""
        if self.get_rate_plan_by_name(data.name):
            raise DuplicateEntityError("RatePlan", "name", data.name)

        seen = set()
        for item in data.rates:
            self._require_room_type(item.room_type_id)
            self._validate_rate(item.rate)
            if item.room_type_id in seen:
                raise DuplicateRateError(None, item.room_type_id)
            seen.add(item.room_type_id)

        plan = RatePlan(name=data.name, description=data.description)
        self.db.add(plan)
        self.db.flush()

        for item in data.rates:
            self.db.add(RatePlanRate(
                rate_plan_id=plan.id,
                room_type_id=item.room_type_id,
                rate=self._validate_rate(item.rate)
            ))

        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Rate plan created: {plan.name} ({len(data.rates)} rates) by {actor.username}")

        self.audit.log_create(AuditEntity.RATE_PLAN, plan.id, actor)
        return plan

    def update_rate_plan(self, rate_plan_id: int, data: RatePlanUpdate,
                         actor: ActorContext) -> RatePlan:
        """更新价格方案名称/描述"""
        plan = self._require_plan(rate_plan_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("name") and update_data["name"] != plan.name:
            if self.get_rate_plan_by_name(update_data["name"]):
                raise DuplicateEntityError("RatePlan", "name", update_data["name"])

        before = self._snapshot(plan)
        for key, value in update_data.items():
            if key == "name" and not value:
                continue
            setattr(plan, key, value)

        self.db.commit()
        self.db.refresh(plan)

        self.audit.log_update(AuditEntity.RATE_PLAN, plan.id, actor, before, self._snapshot(plan))
        return plan

    def delete_rate_plan(self, rate_plan_id: int, actor: ActorContext) -> bool:
        """
        删除价格方案

        仍被任何预订（不论状态）引用时不能删除
        """
        plan = self._require_plan(rate_plan_id)

        referrer_count = self.db.query(Reservation).filter(
            Reservation.rate_plan_id == rate_plan_id
        ).count()
        if referrer_count > 0:
            raise InUseError("RatePlan", rate_plan_id, referrer_count)

        self.db.query(RatePlanRate).filter(
            RatePlanRate.rate_plan_id == rate_plan_id
        ).delete(synchronize_session=False)
        self.db.delete(plan)
        self.db.commit()
        logger.info(f"Rate plan deleted: {rate_plan_id} by {actor.username}")

        self.audit.log_delete(AuditEntity.RATE_PLAN, rate_plan_id, actor)
        return True

    # ========== 价格表 ==========

    def add_rate(self, rate_plan_id: int, room_type_id: int, rate: Decimal,
                 actor: ActorContext) -> RatePlanRate:
        """为价格方案新增房型价格"""
        plan = self._require_plan(rate_plan_id)
        self._require_room_type(room_type_id)
        amount = self._validate_rate(rate)

        if self._find_rate(rate_plan_id, room_type_id):
            raise DuplicateRateError(rate_plan_id, room_type_id)

        before = self._snapshot(plan)
        entry = RatePlanRate(rate_plan_id=rate_plan_id, room_type_id=room_type_id, rate=amount)
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            # 并发写入同一 (方案, 房型)
            self.db.rollback()
            raise DuplicateRateError(rate_plan_id, room_type_id)
        self.db.refresh(entry)

        self.audit.log_update(AuditEntity.RATE_PLAN, rate_plan_id, actor, before, self._snapshot(plan))
        return entry

    def update_rate(self, rate_plan_id: int, room_type_id: int, rate: Decimal,
                    actor: ActorContext) -> RatePlanRate:
        """修改房型价格"""
        plan = self._require_plan(rate_plan_id)
        entry = self._find_rate(rate_plan_id, room_type_id)
        if entry is None:
            raise RateNotFoundError(rate_plan_id, room_type_id)
        amount = self._validate_rate(rate)

        before = self._snapshot(plan)
        entry.rate = amount
        self.db.commit()
        self.db.refresh(entry)

        self.audit.log_update(AuditEntity.RATE_PLAN, rate_plan_id, actor, before, self._snapshot(plan))
        return entry

    def remove_rate(self, rate_plan_id: int, room_type_id: int, actor: ActorContext) -> bool:
        """删除房型价格"""
        plan = self._require_plan(rate_plan_id)
        entry = self._find_rate(rate_plan_id, room_type_id)
        if entry is None:
            raise RateNotFoundError(rate_plan_id, room_type_id)

        before = self._snapshot(plan)
        self.db.delete(entry)
        self.db.commit()

        self.audit.log_update(AuditEntity.RATE_PLAN, rate_plan_id, actor, before, self._snapshot(plan))
        return True

    def rates_by_room_type(self, rate_plan_id: int) -> Dict[int, Decimal]:
        return {r.room_type_id: r.rate for r in self.get_rates(rate_plan_id)}
