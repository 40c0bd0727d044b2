"""
预订服务 - 本体操作层
管理 Reservation 生命周期（创建、入住、退房、取消、修改）及房间状态联动

状态转换表见 pms.models.lifecycle
"""
from typing import Any, Dict, List, Optional
from datetime import date
from uuid import uuid4
import logging

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

from pms.engine.audit import AuditEntity, snapshot
from pms.engine.clock import Clock, system_clock
from pms.errors import (
    ConflictError, DomainValidationError, InvalidTransitionError, NotFoundError
)
from pms.models.lifecycle import (
    CANCEL, CHECK_IN, CHECK_OUT, CREATE_EFFECTS,
    occupy_room, reserve_room, reservation_state_machine, send_room_to_cleaning
)
from pms.models.ontology import (
    HOLDING_RESERVATION_STATUSES, Guest, PaymentStatus, RatePlan, Reservation,
    ReservationStatus, Room, RoomStatus
)
from pms.models.schemas import ReservationCreate, ReservationUpdate
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.availability_service import AvailabilityService
from pms.services.rate_plan_service import RatePlanService, to_money

logger = logging.getLogger(__name__)

UPDATE = "update"

# 修改预订换房时，新房间应处的状态
_ROOM_EFFECT_ON_MOVE = {
    ReservationStatus.CONFIRMED: reserve_room,
    ReservationStatus.CHECKED_IN: occupy_room,
}


class ReservationService:
    """预订服务"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.audit = audit or AuditService(clock=self.clock)
        self.availability = AvailabilityService(db)
        self.rate_plans = RatePlanService(db, audit=self.audit)

    def _generate_reservation_no(self) -> str:
        """生成预订号：RES + 日期 + 6位随机十六进制"""
        today = self.clock.today().strftime('%Y%m%d')
        return f"RES{today}{uuid4().hex[:6].upper()}"

    # ========== 查询 ==========

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        """获取单个预订"""
        return self.db.query(Reservation).filter(Reservation.id == reservation_id).first()

    def get_reservation_by_no(self, reservation_no: str) -> Optional[Reservation]:
        """根据预订号获取预订"""
        return self.db.query(Reservation).filter(
            Reservation.reservation_no == reservation_no
        ).first()

    def get_reservations(self, status: Optional[ReservationStatus] = None,
                         guest_id: Optional[int] = None,
                         room_id: Optional[int] = None) -> List[Reservation]:
        """获取预订列表"""
        query = self.db.query(Reservation)

        if status:
            query = query.filter(Reservation.status == status)
        if guest_id:
            query = query.filter(Reservation.guest_id == guest_id)
        if room_id:
            query = query.filter(Reservation.room_id == room_id)

        return query.order_by(Reservation.check_in_date.desc(), Reservation.id).all()

    def get_reservations_by_date_range(self, start: date, end: date) -> List[Reservation]:
        """获取入住或离店日期落在 [start, end] 内的预订"""
        return self.db.query(Reservation).filter(
            or_(
                and_(Reservation.check_in_date >= start, Reservation.check_in_date <= end),
                and_(Reservation.check_out_date >= start, Reservation.check_out_date <= end),
            )
        ).order_by(Reservation.check_in_date, Reservation.id).all()

    def get_today_arrivals(self) -> List[Reservation]:
        """获取今日预抵"""
        return self.db.query(Reservation).filter(
            Reservation.check_in_date == self.clock.today(),
            Reservation.status == ReservationStatus.CONFIRMED
        ).all()

    # ========== 内部校验 ==========

    def _require_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.get_reservation(reservation_id)
        if not reservation:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    def _require_guest(self, guest_id: int) -> Guest:
        guest = self.db.query(Guest).filter(Guest.id == guest_id).first()
        if not guest:
            raise NotFoundError("Guest", guest_id)
        return guest

    def _require_room(self, room_id: int, lock: bool = False) -> Room:
        query = self.db.query(Room).filter(Room.id == room_id)
        if lock:
            # 锁定房间行，串行化同一房间的并发预订
            query = query.with_for_update()
        room = query.first()
        if not room:
            raise NotFoundError("Room", room_id)
        return room

    def _require_rate_plan(self, rate_plan_id: int) -> RatePlan:
        plan = self.db.query(RatePlan).filter(RatePlan.id == rate_plan_id).first()
        if not plan:
            raise NotFoundError("RatePlan", rate_plan_id)
        return plan

    @staticmethod
    def _validate_dates(check_in: date, check_out: date) -> None:
        if check_in >= check_out:
            raise DomainValidationError("check_out_date", "离店日期必须晚于入住日期")

    @staticmethod
    def _validate_capacity(room: Room, guest_count: int) -> None:
        if guest_count is None or guest_count < 1:
            raise DomainValidationError("guest_count", "入住人数至少为1")
        if room.max_occupancy is not None and guest_count > room.max_occupancy:
            raise DomainValidationError(
                "guest_count",
                f"入住人数 {guest_count} 超过房间 {room.room_number} 的最大入住人数 {room.max_occupancy}"
            )

    def _ensure_available(self, room_id: int, check_in: date, check_out: date,
                          exclude_reservation_id: Optional[int] = None) -> None:
        conflicts = self.availability.find_conflicts(room_id, check_in, check_out, exclude_reservation_id)
        if conflicts:
            raise ConflictError(room_id, check_in, check_out, [r.id for r in conflicts])

    def _recheck_after_flush(self, reservation: Reservation) -> None:
        """插入/修改已 flush 后在同一事务内复查冲突，命中则回滚"""
        conflicts = self.availability.find_conflicts(
            reservation.room_id, reservation.check_in_date, reservation.check_out_date,
            exclude_reservation_id=reservation.id
        )
        if conflicts:
            error = ConflictError(
                reservation.room_id, reservation.check_in_date, reservation.check_out_date,
                [r.id for r in conflicts]
            )
            self.db.rollback()
            logger.warning(f"Concurrent booking detected for room {error.room_id}; rolled back")
            raise error

    def _vacate_room(self, room: Room, reservation: Reservation) -> None:
        """
        换房后处理原房间

        仅在没有其他有效预订持有该房间时才释放预留；
        在住客人换出后，原房间若无其他在住预订则转为清洁中
        """
        holders = [
            r.status for r in self.db.query(Reservation).filter(
                Reservation.room_id == room.id,
                Reservation.id != reservation.id,
                Reservation.status.in_(HOLDING_RESERVATION_STATUSES)
            ).all()
        ]
        if room.status == RoomStatus.RESERVED and not holders:
            room.status = RoomStatus.AVAILABLE
        elif (room.status == RoomStatus.OCCUPIED
              and reservation.status == ReservationStatus.CHECKED_IN
              and ReservationStatus.CHECKED_IN not in holders):
            send_room_to_cleaning({"room": room, "reservation": reservation})

    # ========== 创建 ==========

    def create_reservation(self, data: ReservationCreate, actor: ActorContext) -> Reservation:
        """
        创建预订

        校验顺序：
        1. 日期与人数
        2. 客人、房间、价格方案存在
        3. 锁定房间并检测冲突
        4. 房间容量
        5. 价格方案包含该房型价格
        """
        self._validate_dates(data.check_in_date, data.check_out_date)
        if data.check_in_date < self.clock.today():
            raise DomainValidationError("check_in_date", "入住日期不能早于今天")
        if data.guest_count is None or data.guest_count < 1:
            raise DomainValidationError("guest_count", "入住人数至少为1")

        self._require_guest(data.guest_id)
        room = self._require_room(data.room_id, lock=True)
        self._require_rate_plan(data.rate_plan_id)

        self._ensure_available(room.id, data.check_in_date, data.check_out_date)
        self._validate_capacity(room, data.guest_count)

        rate = self.rate_plans.get_rate(data.rate_plan_id, room.room_type_id)
        nights = (data.check_out_date - data.check_in_date).days

        room_before = snapshot(AuditEntity.ROOM, room)
        reservation = Reservation(
            reservation_no=self._generate_reservation_no(),
            guest_id=data.guest_id,
            room_id=room.id,
            rate_plan_id=data.rate_plan_id,
            check_in_date=data.check_in_date,
            check_out_date=data.check_out_date,
            guest_count=data.guest_count,
            status=reservation_state_machine.initial_state,
            payment_status=PaymentStatus.PENDING,
            total_amount=to_money(rate * nights),
            special_requests=data.special_requests,
            created_by=actor.username,
        )
        self.db.add(reservation)
        self.db.flush()
        self._recheck_after_flush(reservation)

        context = {"reservation": reservation, "room": room, "actor": actor}
        for effect in CREATE_EFFECTS:
            effect(context)

        self.db.commit()
        self.db.refresh(reservation)
        logger.info(
            f"Reservation {reservation.reservation_no} created for room {room.room_number} "
            f"({reservation.check_in_date} ~ {reservation.check_out_date}) by {actor.username}"
        )

        self.audit.log_create(AuditEntity.RESERVATION, reservation.id, actor)
        self.audit.log_update(AuditEntity.ROOM, room.id, actor, room_before, snapshot(AuditEntity.ROOM, room))
        return reservation

    # ========== 状态转换 ==========

    def _fire(self, reservation_id: int, trigger: str, actor: ActorContext,
              changes: Optional[Dict[str, Any]] = None) -> Reservation:
        """执行状态转换，预订与房间在同一工作单元内更新"""
        reservation = self._require_reservation(reservation_id)
        room = self._require_room(reservation.room_id, lock=True)

        before = snapshot(AuditEntity.RESERVATION, reservation)
        room_before = snapshot(AuditEntity.ROOM, room)
        from_state = reservation.status

        transition = reservation_state_machine.fire(
            from_state, trigger, {"reservation": reservation, "room": room, "actor": actor}
        )
        if transition is None:
            raise InvalidTransitionError("Reservation", reservation.id, from_state, trigger)

        reservation.status = transition.to_state
        for key, value in (changes or {}).items():
            setattr(reservation, key, value)

        self.db.commit()
        self.db.refresh(reservation)
        logger.info(
            f"Reservation {reservation.reservation_no}: {from_state.value} -> {reservation.status.value} "
            f"by {actor.username}"
        )

        self.audit.log_update(AuditEntity.RESERVATION, reservation.id, actor,
                              before, snapshot(AuditEntity.RESERVATION, reservation))
        room_after = snapshot(AuditEntity.ROOM, room)
        if room_after != room_before:
            self.audit.log_update(AuditEntity.ROOM, room.id, actor, room_before, room_after)
        return reservation

    def check_in(self, reservation_id: int, actor: ActorContext) -> Reservation:
        """办理入住：CONFIRMED/PENDING -> CHECKED_IN，房间 -> OCCUPIED"""
        return self._fire(reservation_id, CHECK_IN, actor, {"actual_check_in": self.clock.now()})

    def check_out(self, reservation_id: int, actor: ActorContext) -> Reservation:
        """办理退房：CHECKED_IN -> CHECKED_OUT，房间 -> CLEANING"""
        return self._fire(reservation_id, CHECK_OUT, actor, {"actual_check_out": self.clock.now()})

    def cancel_reservation(self, reservation_id: int, actor: ActorContext,
                           reason: Optional[str] = None) -> Reservation:
        """取消预订：除已退房外均可取消，预留/占用的房间释放为可用"""
        changes = {"cancel_reason": reason} if reason else None
        return self._fire(reservation_id, CANCEL, actor, changes)

    # ========== 修改 ==========

    def update_reservation(self, reservation_id: int, data: ReservationUpdate,
                           actor: ActorContext) -> Reservation:
        """
        修改预订

        终态（已退房/已取消/未到）的预订不可修改；
        房间或日期变化时重新检测冲突（排除自身），并重新计算总价
        """
        reservation = self._require_reservation(reservation_id)
        if reservation_state_machine.is_terminal(reservation.status):
            raise InvalidTransitionError("Reservation", reservation.id, reservation.status, UPDATE)

        update_data = {
            key: value for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "special_requests"
        }

        if "guest_id" in update_data:
            self._require_guest(update_data["guest_id"])
        new_room_id = update_data.get("room_id", reservation.room_id)
        room_changed = new_room_id != reservation.room_id
        room = self._require_room(new_room_id, lock=True)
        if "rate_plan_id" in update_data:
            self._require_rate_plan(update_data["rate_plan_id"])

        check_in = update_data.get("check_in_date", reservation.check_in_date)
        check_out = update_data.get("check_out_date", reservation.check_out_date)
        self._validate_dates(check_in, check_out)
        dates_changed = (check_in, check_out) != (reservation.check_in_date, reservation.check_out_date)

        if room_changed or dates_changed:
            self._ensure_available(room.id, check_in, check_out, exclude_reservation_id=reservation.id)

        self._validate_capacity(room, update_data.get("guest_count", reservation.guest_count))

        rate_plan_id = update_data.get("rate_plan_id", reservation.rate_plan_id)
        reprice = room_changed or dates_changed or rate_plan_id != reservation.rate_plan_id
        if reprice:
            rate = self.rate_plans.get_rate(rate_plan_id, room.room_type_id)
            update_data["total_amount"] = to_money(rate * (check_out - check_in).days)

        before = snapshot(AuditEntity.RESERVATION, reservation)
        old_room = self._require_room(reservation.room_id) if room_changed else None
        room_snapshots = []
        if old_room is not None:
            room_snapshots = [(old_room, snapshot(AuditEntity.ROOM, old_room)),
                              (room, snapshot(AuditEntity.ROOM, room))]

        for key, value in update_data.items():
            setattr(reservation, key, value)

        if room_changed or dates_changed:
            self.db.flush()
            self._recheck_after_flush(reservation)

        effect = _ROOM_EFFECT_ON_MOVE.get(reservation.status)
        if old_room is not None and effect is not None:
            self._vacate_room(old_room, reservation)
            effect({"room": room, "reservation": reservation})

        self.db.commit()
        self.db.refresh(reservation)
        logger.info(f"Reservation {reservation.reservation_no} updated by {actor.username}")

        self.audit.log_update(AuditEntity.RESERVATION, reservation.id, actor,
                              before, snapshot(AuditEntity.RESERVATION, reservation))
        for changed_room, room_before in room_snapshots:
            room_after = snapshot(AuditEntity.ROOM, changed_room)
            if room_after != room_before:
                self.audit.log_update(AuditEntity.ROOM, changed_room.id, actor, room_before, room_after)
        return reservation
