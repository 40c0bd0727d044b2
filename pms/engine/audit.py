"""
pms/engine/audit.py

审计差异引擎 - 按实体类型静态声明可审计字段，计算字段级变更

规则：
- 只比较声明过的字段，修改时间、ORM 内部状态、反向集合不会进入快照
- 引用其他实体的字段只记录 {id, label}，不嵌入整个对象
- 旧值缺失/为空而新值非空 → 变更；旧值存在而新快照缺失 → 变更为 None
- 使用值相等（==）比较
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
import json


class AuditEntity(str, Enum):
    """可审计的实体类型"""
    GUEST = "Guest"
    ROOM_TYPE = "RoomType"
    ROOM = "Room"
    RATE_PLAN = "RatePlan"
    RESERVATION = "Reservation"
    INVOICE = "Invoice"


@dataclass(frozen=True)
class AuditField:
    """
    可审计字段

    Attributes:
        name: 属性名
        reference: 引用的实体类型（外键字段），普通字段为 None
    """
    name: str
    reference: Optional[AuditEntity] = None


AUDITABLE_FIELDS: Dict[AuditEntity, Tuple[AuditField, ...]] = {
    AuditEntity.GUEST: (
        AuditField("first_name"),
        AuditField("last_name"),
        AuditField("email"),
        AuditField("phone"),
    ),
    AuditEntity.ROOM_TYPE: (
        AuditField("name"),
        AuditField("description"),
        AuditField("base_price"),
        AuditField("max_occupancy"),
    ),
    AuditEntity.ROOM: (
        AuditField("room_number"),
        AuditField("floor"),
        AuditField("room_type_id", AuditEntity.ROOM_TYPE),
        AuditField("status"),
        AuditField("max_occupancy"),
        AuditField("price_per_night"),
        AuditField("description"),
    ),
    AuditEntity.RATE_PLAN: (
        AuditField("name"),
        AuditField("description"),
        # 价格表 {room_type_id: rate}，由服务层组装
        AuditField("rates"),
    ),
    AuditEntity.RESERVATION: (
        AuditField("reservation_no"),
        AuditField("guest_id", AuditEntity.GUEST),
        AuditField("room_id", AuditEntity.ROOM),
        AuditField("rate_plan_id", AuditEntity.RATE_PLAN),
        AuditField("check_in_date"),
        AuditField("check_out_date"),
        AuditField("guest_count"),
        AuditField("status"),
        AuditField("actual_check_in"),
        AuditField("actual_check_out"),
        AuditField("special_requests"),
        AuditField("total_amount"),
        AuditField("payment_status"),
        AuditField("cancel_reason"),
    ),
    AuditEntity.INVOICE: (
        AuditField("invoice_no"),
        AuditField("reservation_id", AuditEntity.RESERVATION),
        AuditField("subtotal"),
        AuditField("tax_amount"),
        AuditField("discount_amount"),
        AuditField("total_amount"),
        AuditField("status"),
        AuditField("paid_at"),
        AuditField("payment_method"),
        AuditField("notes"),
        # 明细数量，由服务层组装
        AuditField("item_count"),
    ),
}

LabelResolver = Callable[[AuditEntity, Any], Optional[str]]


def auditable_fields(entity_type: AuditEntity) -> Tuple[AuditField, ...]:
    return AUDITABLE_FIELDS[AuditEntity(entity_type)]


def snapshot(entity_type: AuditEntity, obj: Any, **extra: Any) -> Dict[str, Any]:
    """
    生成实体快照

    Args:
        entity_type: 实体类型
        obj: ORM 对象（按属性名读取）
        extra: 非 ORM 属性的派生字段（必须是声明过的字段）

    Returns:
        只包含声明字段的字典
    """
    fields = auditable_fields(entity_type)
    declared = {f.name for f in fields}
    unknown = set(extra) - declared
    if unknown:
        raise KeyError(f"Undeclared audit fields for {entity_type}: {sorted(unknown)}")

    data = {}
    for f in fields:
        if f.name in extra:
            data[f.name] = extra[f.name]
        elif hasattr(obj, f.name):
            data[f.name] = getattr(obj, f.name)
    return data


def diff(
    entity_type: AuditEntity,
    before: Optional[Mapping[str, Any]],
    after: Optional[Mapping[str, Any]],
    label_resolver: Optional[LabelResolver] = None,
) -> Dict[str, Dict[str, Any]]:
    """
    计算两个快照之间的字段级差异

    Returns:
        {field: {"old": ..., "new": ...}}，值已转换为可 JSON 序列化的形式
    """
    before = before or {}
    after = after or {}
    changes: Dict[str, Dict[str, Any]] = {}

    for f in auditable_fields(entity_type):
        old = before.get(f.name)
        if f.name in after:
            new = after[f.name]
            if old is None and new is None:
                continue
            if old is not None and new is not None and old == new:
                continue
        else:
            if old is None:
                continue
            new = None

        changes[f.name] = {
            "old": _render(f, old, label_resolver),
            "new": _render(f, new, label_resolver),
        }

    return changes


def _render(f: AuditField, value: Any, label_resolver: Optional[LabelResolver]) -> Any:
    if value is None:
        return None
    if f.reference is not None:
        label = None
        if label_resolver is not None:
            try:
                label = label_resolver(f.reference, value)
            except Exception:
                label = None
        return {"id": value, "label": label}
    return to_plain(value)


def to_plain(value: Any) -> Any:
    """转换为 JSON 友好的值"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_plain(v) for v in value]
    return value


def dumps(changes: Mapping[str, Any]) -> str:
    return json.dumps(changes, ensure_ascii=False, sort_keys=True)


__all__ = [
    "AuditEntity",
    "AuditField",
    "AUDITABLE_FIELDS",
    "auditable_fields",
    "snapshot",
    "diff",
    "to_plain",
    "dumps",
]
