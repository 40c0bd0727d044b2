"""
客人服务 - 本体操作层
"""
from typing import List, Optional
import logging
from sqlalchemy import or_
from sqlalchemy.orm import Session

from pms.engine.audit import AuditEntity, snapshot
from pms.errors import DuplicateEntityError, InUseError, NotFoundError
from pms.models.ontology import Guest, Reservation
from pms.models.schemas import GuestCreate, GuestUpdate
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class GuestService:
    """客人服务"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService()

    def get_guests(self, search: Optional[str] = None, limit: int = 100) -> List[Guest]:
        """获取客人列表，search 模糊匹配姓名、邮箱、电话"""
        query = self.db.query(Guest)

        if search:
            search_pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Guest.first_name.like(search_pattern),
                    Guest.last_name.like(search_pattern),
                    Guest.email.like(search_pattern),
                    Guest.phone.like(search_pattern)
                )
            )

        return query.order_by(Guest.last_name, Guest.first_name, Guest.id).limit(limit).all()

    def get_guest(self, guest_id: int) -> Optional[Guest]:
        """获取单个客人"""
        return self.db.query(Guest).filter(Guest.id == guest_id).first()

    def get_guest_by_email(self, email: str) -> Optional[Guest]:
        return self.db.query(Guest).filter(Guest.email == email).first()

    def _require_guest(self, guest_id: int) -> Guest:
        guest = self.get_guest(guest_id)
        if not guest:
            raise NotFoundError("Guest", guest_id)
        return guest

    def create_guest(self, data: GuestCreate, actor: ActorContext) -> Guest:
        """创建客人（邮箱唯一）"""
        if data.email and self.get_guest_by_email(data.email):
            raise DuplicateEntityError("Guest", "email", data.email)

        guest = Guest(**data.model_dump())
        self.db.add(guest)
        self.db.commit()
        self.db.refresh(guest)

        self.audit.log_create(AuditEntity.GUEST, guest.id, actor)
        return guest

    def update_guest(self, guest_id: int, data: GuestUpdate, actor: ActorContext) -> Guest:
        """更新客人信息，改邮箱时仍需唯一"""
        guest = self._require_guest(guest_id)
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        new_email = update_data.get("email")
        if new_email and new_email != guest.email:
            existing = self.get_guest_by_email(new_email)
            if existing and existing.id != guest.id:
                raise DuplicateEntityError("Guest", "email", new_email)

        before = snapshot(AuditEntity.GUEST, guest)
        for key, value in update_data.items():
            setattr(guest, key, value)

        self.db.commit()
        self.db.refresh(guest)
        logger.info(f"Guest {guest.id} updated by {actor.username}")

        self.audit.log_update(AuditEntity.GUEST, guest.id, actor, before, snapshot(AuditEntity.GUEST, guest))
        return guest

    def delete_guest(self, guest_id: int, actor: ActorContext) -> bool:
        """删除客人，有预订记录（不论状态）时不能删除"""
        guest = self._require_guest(guest_id)

        referrer_count = self.db.query(Reservation).filter(Reservation.guest_id == guest_id).count()
        if referrer_count > 0:
            raise InUseError("Guest", guest_id, referrer_count)

        self.db.delete(guest)
        self.db.commit()
        logger.info(f"Guest deleted: {guest_id} by {actor.username}")

        self.audit.log_delete(AuditEntity.GUEST, guest_id, actor)
        return True
