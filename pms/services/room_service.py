"""
房间服务 - 本体操作层
管理 Room 和 RoomType 对象
"""
from typing import List, Optional
import logging
from sqlalchemy.orm import Session

from pms.engine.audit import AuditEntity, snapshot
from pms.errors import DuplicateEntityError, InUseError, InvalidTransitionError, NotFoundError
from pms.models.ontology import (
    HOLDING_RESERVATION_STATUSES, RatePlanRate, Reservation, Room, RoomStatus, RoomType
)
from pms.models.schemas import RoomCreate, RoomTypeCreate, RoomTypeUpdate, RoomUpdate
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService

logger = logging.getLogger(__name__)

# 由预订驱动的房间状态
_RESERVATION_DRIVEN = (RoomStatus.RESERVED, RoomStatus.OCCUPIED)


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService()

    # ============== 房型操作 ==============

    def get_room_types(self) -> List[RoomType]:
        """获取所有房型"""
        return self.db.query(RoomType).order_by(RoomType.id).all()

    def get_room_type(self, room_type_id: int) -> Optional[RoomType]:
        """获取单个房型"""
        return self.db.query(RoomType).filter(RoomType.id == room_type_id).first()

    def get_room_type_by_name(self, name: str) -> Optional[RoomType]:
        return self.db.query(RoomType).filter(RoomType.name == name).first()

    def create_room_type(self, data: RoomTypeCreate, actor: ActorContext) -> RoomType:
        """创建房型"""
        if self.get_room_type_by_name(data.name):
            raise DuplicateEntityError("RoomType", "name", data.name)

        room_type = RoomType(**data.model_dump())
        self.db.add(room_type)
        self.db.commit()
        self.db.refresh(room_type)

        self.audit.log_create(AuditEntity.ROOM_TYPE, room_type.id, actor)
        return room_type

    def _require_room_type(self, room_type_id: int) -> RoomType:
        room_type = self.get_room_type(room_type_id)
        if not room_type:
            raise NotFoundError("RoomType", room_type_id)
        return room_type

    def update_room_type(self, room_type_id: int, data: RoomTypeUpdate, actor: ActorContext) -> RoomType:
        """更新房型"""
        room_type = self._require_room_type(room_type_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        new_name = update_data.get("name")
        if new_name and new_name != room_type.name and self.get_room_type_by_name(new_name):
            raise DuplicateEntityError("RoomType", "name", new_name)

        before = snapshot(AuditEntity.ROOM_TYPE, room_type)
        for key, value in update_data.items():
            setattr(room_type, key, value)

        self.db.commit()
        self.db.refresh(room_type)
        logger.info(f"Room type {room_type.name} updated by {actor.username}")

        self.audit.log_update(AuditEntity.ROOM_TYPE, room_type.id, actor,
                              before, snapshot(AuditEntity.ROOM_TYPE, room_type))
        return room_type

    def delete_room_type(self, room_type_id: int, actor: ActorContext) -> bool:
        """
        删除房型

        房型下仍有房间，或仍有价格方案为其定价时不能删除
        """
        room_type = self._require_room_type(room_type_id)

        room_count = self.db.query(Room).filter(Room.room_type_id == room_type_id).count()
        if room_count > 0:
            raise InUseError("RoomType", room_type_id, room_count, referrer_type="Room")

        rate_count = self.db.query(RatePlanRate).filter(RatePlanRate.room_type_id == room_type_id).count()
        if rate_count > 0:
            raise InUseError("RoomType", room_type_id, rate_count, referrer_type="RatePlanRate")

        self.db.delete(room_type)
        self.db.commit()
        logger.info(f"Room type deleted: {room_type_id} by {actor.username}")

        self.audit.log_delete(AuditEntity.ROOM_TYPE, room_type_id, actor)
        return True

    # ============== 房间操作 ==============

    def get_rooms(self, status: Optional[RoomStatus] = None,
                  room_type_id: Optional[int] = None) -> List[Room]:
        """获取房间列表"""
        query = self.db.query(Room)
        if status:
            query = query.filter(Room.status == status)
        if room_type_id:
            query = query.filter(Room.room_type_id == room_type_id)
        return query.order_by(Room.room_number).all()

    def get_room(self, room_id: int) -> Optional[Room]:
        """获取单个房间"""
        return self.db.query(Room).filter(Room.id == room_id).first()

    def get_room_by_number(self, room_number: str) -> Optional[Room]:
        return self.db.query(Room).filter(Room.room_number == room_number).first()

    def create_room(self, data: RoomCreate, actor: ActorContext) -> Room:
        """
        创建房间

        未指定最大入住人数时沿用房型设置
        """
        room_type = self._require_room_type(data.room_type_id)
        if self.get_room_by_number(data.room_number):
            raise DuplicateEntityError("Room", "room_number", data.room_number)

        room = Room(**data.model_dump())
        if room.max_occupancy is None:
            room.max_occupancy = room_type.max_occupancy
        room.status = RoomStatus.AVAILABLE

        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Room {room.room_number} created ({room_type.name}) by {actor.username}")

        self.audit.log_create(AuditEntity.ROOM, room.id, actor)
        return room

    def _require_room(self, room_id: int) -> Room:
        room = self.get_room(room_id)
        if not room:
            raise NotFoundError("Room", room_id)
        return room

    def update_room(self, room_id: int, data: RoomUpdate, actor: ActorContext) -> Room:
        """更新房间信息（房间号唯一，房型须存在）"""
        room = self._require_room(room_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        new_number = update_data.get("room_number")
        if new_number and new_number != room.room_number and self.get_room_by_number(new_number):
            raise DuplicateEntityError("Room", "room_number", new_number)
        if update_data.get("room_type_id") is not None:
            self._require_room_type(update_data["room_type_id"])

        before = snapshot(AuditEntity.ROOM, room)
        for key, value in update_data.items():
            setattr(room, key, value)

        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Room {room.room_number} updated by {actor.username}")

        self.audit.log_update(AuditEntity.ROOM, room.id, actor, before, snapshot(AuditEntity.ROOM, room))
        return room

    def delete_room(self, room_id: int, actor: ActorContext) -> bool:
        """删除房间，有预订记录（不论状态）时不能删除"""
        room = self._require_room(room_id)

        referrer_count = self.db.query(Reservation).filter(Reservation.room_id == room_id).count()
        if referrer_count > 0:
            raise InUseError("Room", room_id, referrer_count)

        room_number = room.room_number
        self.db.delete(room)
        self.db.commit()
        logger.info(f"Room {room_number} deleted by {actor.username}")

        self.audit.log_delete(AuditEntity.ROOM, room_id, actor)
        return True

    def update_room_status(self, room_id: int, status: RoomStatus, actor: ActorContext) -> Room:
        """
        手动修改房间状态（清洁完成、维修等）

        房间被有效预订预留或占用时，状态由预订生命周期驱动，不能手动修改
        """
        room = self._require_room(room_id)

        if room.status in _RESERVATION_DRIVEN:
            holding = self.db.query(Reservation).filter(
                Reservation.room_id == room_id,
                Reservation.status.in_(HOLDING_RESERVATION_STATUSES)
            ).count()
            if holding:
                raise InvalidTransitionError("Room", room_id, room.status, f"set_{RoomStatus(status).value}")

        before = snapshot(AuditEntity.ROOM, room)
        old_status = room.status
        room.status = status
        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Room {room.room_number} status: {old_status.value} -> {room.status.value}")

        self.audit.log_update(AuditEntity.ROOM, room.id, actor, before, snapshot(AuditEntity.ROOM, room))
        return room
