"""
审计服务 - 独立、尽力而为的变更记录

写入：每次记录使用独立会话（独立工作单元），在业务提交之后调用；
     任何内部异常只记录日志，永不抛给调用方。
查询：使用请求会话，按实体 / 操作人 / 动作 / 时间过滤。
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

from sqlalchemy.orm import Session

from pms.config import settings
from pms.database import SessionLocal
from pms.engine import audit
from pms.engine.audit import AuditEntity
from pms.engine.clock import Clock, system_clock
from pms.models.ontology import (
    AuditAction, AuditLog, Guest, Invoice, RatePlan, Reservation, Room, RoomType
)
from pms.security.context import ActorContext, SYSTEM_ACTOR

logger = logging.getLogger(__name__)


# 引用字段的显示标签
_LABELS: Dict[AuditEntity, Any] = {
    AuditEntity.GUEST: (Guest, lambda g: g.full_name),
    AuditEntity.ROOM_TYPE: (RoomType, lambda t: t.name),
    AuditEntity.ROOM: (Room, lambda r: r.room_number),
    AuditEntity.RATE_PLAN: (RatePlan, lambda p: p.name),
    AuditEntity.RESERVATION: (Reservation, lambda r: r.reservation_no),
    AuditEntity.INVOICE: (Invoice, lambda i: i.invoice_no),
}


class AuditService:
    """
    审计服务

    支持依赖注入以便于测试：
    - db: 查询使用的会话
    - session_factory: 写入审计记录使用的会话工厂
    - clock: 时钟
    """

    def __init__(self, db: Optional[Session] = None,
                 session_factory: Optional[Callable[[], Session]] = None,
                 clock: Optional[Clock] = None,
                 enabled: Optional[bool] = None):
        self.db = db
        self._session_factory = session_factory or SessionLocal
        self.clock = clock or system_clock
        self.enabled = settings.AUDIT_ENABLED if enabled is None else enabled

    # ========== 写入 ==========

    def record(
        self,
        action: AuditAction,
        entity_type: AuditEntity,
        entity_id: Optional[int],
        actor: ActorContext,
        before: Optional[Mapping[str, Any]] = None,
        after: Optional[Mapping[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        记录一条审计日志

        Args:
            action: CREATE / UPDATE / DELETE
            entity_type: 实体类型
            entity_id: 实体ID
            actor: 操作人
            before: 变更前快照（仅 UPDATE 使用）
            after: 变更后快照（仅 UPDATE 使用）

        Returns:
            写入的审计记录；审计关闭或写入失败时返回 None
        """
        if not self.enabled:
            return None

        try:
            action = AuditAction(action)
            entity_type = AuditEntity(entity_type)
            session = self._session_factory()
            try:
                changes = None
                if action == AuditAction.UPDATE:
                    changes = audit.dumps(audit.diff(
                        entity_type, before, after,
                        label_resolver=lambda ref, ref_id: self._resolve_label(session, ref, ref_id),
                    ))

                log = AuditLog(
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    action=action,
                    username=(actor or SYSTEM_ACTOR).username,
                    timestamp=self.clock.now(),
                    changes=changes,
                    description=f"{action.value.upper()} {entity_type.value} with ID {entity_id}",
                )
                session.add(log)
                session.commit()
                session.refresh(log)
            finally:
                session.close()
        except Exception:
            logger.exception(
                f"Failed to record audit log for {action} {entity_type} {entity_id}; operation result is unaffected"
            )
            return None

        logger.info(f"Audit log: {log.action.value} {log.entity_type}:{log.entity_id} by {log.username}")
        return log

    def log_create(self, entity_type: AuditEntity, entity_id: int,
                   actor: ActorContext) -> Optional[AuditLog]:
        return self.record(AuditAction.CREATE, entity_type, entity_id, actor)

    def log_update(self, entity_type: AuditEntity, entity_id: int, actor: ActorContext,
                   before: Mapping[str, Any], after: Mapping[str, Any]) -> Optional[AuditLog]:
        return self.record(AuditAction.UPDATE, entity_type, entity_id, actor, before, after)

    def log_delete(self, entity_type: AuditEntity, entity_id: int,
                   actor: ActorContext) -> Optional[AuditLog]:
        return self.record(AuditAction.DELETE, entity_type, entity_id, actor)

    @staticmethod
    def _resolve_label(session: Session, entity_type: AuditEntity, entity_id: Any) -> Optional[str]:
        model, label = _LABELS[entity_type]
        obj = session.get(model, entity_id)
        return label(obj) if obj is not None else None

    # ========== 查询 ==========

    def _query_session(self) -> Session:
        if self.db is None:
            raise RuntimeError("AuditService queries require a database session")
        return self.db

    def get_log(self, log_id: int) -> Optional[AuditLog]:
        """获取单条审计记录"""
        return self._query_session().get(AuditLog, log_id)

    def get_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        username: Optional[str] = None,
        action: Optional[AuditAction] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLog]:
        """按条件查询审计记录（按时间倒序）"""
        query = self._query_session().query(AuditLog)

        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        if username:
            query = query.filter(AuditLog.username == username)
        if action:
            query = query.filter(AuditLog.action == action)
        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp < end)

        return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()

    def get_by_entity(self, entity_type: str, entity_id: int, limit: int = 100) -> List[AuditLog]:
        """获取某个实体的审计记录"""
        return self.get_logs(entity_type=entity_type, entity_id=entity_id, limit=limit)
