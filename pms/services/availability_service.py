"""
房态可用性服务 - 同一房间日期区间冲突检测
区间按半开 [入住, 离店) 处理，前一单离店日等于后一单入住日不算冲突
"""
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session

from pms.errors import DomainValidationError
from pms.models.ontology import (
    Reservation, Room, RoomStatus, INACTIVE_RESERVATION_STATUSES
)


class AvailabilityService:
    """可用性服务（只读）"""

    def __init__(self, db: Session):
        self.db = db

    def find_conflicts(self, room_id: int, check_in: date, check_out: date,
                       exclude_reservation_id: Optional[int] = None) -> List[Reservation]:
        """
        查找与给定区间重叠的有效预订

        Args:
            room_id: 房间ID
            check_in: 入住日期
            check_out: 离店日期
            exclude_reservation_id: 排除的预订（修改预订时排除自身）
        """
        query = self.db.query(Reservation).filter(
            Reservation.room_id == room_id,
            Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES),
            Reservation.check_in_date < check_out,
            Reservation.check_out_date > check_in,
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query.order_by(Reservation.check_in_date).all()

    def has_conflict(self, room_id: int, check_in: date, check_out: date,
                     exclude_reservation_id: Optional[int] = None) -> bool:
        return len(self.find_conflicts(room_id, check_in, check_out, exclude_reservation_id)) > 0

    def get_available_rooms(self, check_in: date, check_out: date,
                            room_type_id: Optional[int] = None,
                            guest_count: Optional[int] = None) -> List[Room]:
        """获取区间内可预订的房间（排除维修中的房间）"""
        if check_in >= check_out:
            raise DomainValidationError("check_out_date", "离店日期必须晚于入住日期")

        query = self.db.query(Room).filter(Room.status != RoomStatus.MAINTENANCE)
        if room_type_id:
            query = query.filter(Room.room_type_id == room_type_id)

        busy_room_ids = {
            row.room_id for row in self.db.query(Reservation.room_id).filter(
                Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES),
                Reservation.check_in_date < check_out,
                Reservation.check_out_date > check_in,
            ).all()
        }

        rooms = []
        for room in query.order_by(Room.room_number).all():
            if room.id in busy_room_ids:
                continue
            if guest_count and room.max_occupancy is not None and guest_count > room.max_occupancy:
                continue
            rooms.append(room)
        return rooms
