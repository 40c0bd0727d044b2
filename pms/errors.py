"""
业务错误类型

所有业务规则违例都以带类型的错误上报给调用方：
- error_code: 错误类别（ErrorKind）
- message: 可读信息
- context: 结构化上下文，供处理器映射为传输层响应
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """错误类别"""
    NOT_FOUND = "not_found"
    DUPLICATE_ENTITY = "duplicate_entity"
    DUPLICATE_RATE = "duplicate_rate"
    DUPLICATE_INVOICE = "duplicate_invoice"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    VALIDATION_ERROR = "validation_error"
    RATE_NOT_FOUND = "rate_not_found"
    INVOICE_CLOSED = "invoice_closed"
    ALREADY_PAID = "already_paid"
    IN_USE = "in_use"


class PmsError(Exception):
    """业务错误基类"""

    error_code: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于 JSON 响应）"""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "context": {k: _plain(v) for k, v in self.context.items()},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class NotFoundError(PmsError):
    error_code = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, identifier: Any):
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(
            f"{entity_type} 不存在: {identifier}",
            {"entity_type": entity_type, "id": identifier},
        )


class DuplicateEntityError(PmsError):
    error_code = ErrorKind.DUPLICATE_ENTITY

    def __init__(self, entity_type: str, field: str, value: Any, message: Optional[str] = None):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(
            message or f"{entity_type} 的 {field} '{value}' 已存在",
            {"entity_type": entity_type, "field": field, "value": value},
        )


class DuplicateRateError(DuplicateEntityError):
    """同一价格方案下同一房型已有价格"""
    error_code = ErrorKind.DUPLICATE_RATE

    def __init__(self, rate_plan_id: int, room_type_id: int):
        self.rate_plan_id = rate_plan_id
        self.room_type_id = room_type_id
        super().__init__(
            "RatePlanRate", "room_type_id", room_type_id,
            message=f"价格方案 {rate_plan_id} 已存在房型 {room_type_id} 的价格",
        )
        self.context["rate_plan_id"] = rate_plan_id


class DuplicateInvoiceError(DuplicateEntityError):
    """同一预订只能生成一张账单"""
    error_code = ErrorKind.DUPLICATE_INVOICE

    def __init__(self, reservation_id: int):
        self.reservation_id = reservation_id
        super().__init__(
            "Invoice", "reservation_id", reservation_id,
            message=f"预订 {reservation_id} 已生成账单",
        )


class ConflictError(PmsError):
    """房间在所选日期已被占用"""
    error_code = ErrorKind.CONFLICT

    def __init__(self, room_id: int, check_in: date, check_out: date,
                 conflicting_ids: Optional[List[int]] = None):
        self.room_id = room_id
        self.check_in = check_in
        self.check_out = check_out
        self.conflicting_ids = conflicting_ids or []
        super().__init__(
            f"房间 {room_id} 在 {check_in} ~ {check_out} 期间不可预订",
            {
                "room_id": room_id,
                "check_in_date": check_in,
                "check_out_date": check_out,
                "conflicting_reservation_ids": self.conflicting_ids,
            },
        )


class InvalidTransitionError(PmsError):
    error_code = ErrorKind.INVALID_TRANSITION

    def __init__(self, entity_type: str, entity_id: Any, from_state: Any, trigger: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.trigger = trigger
        state = from_state.value if isinstance(from_state, Enum) else from_state
        super().__init__(
            f"{entity_type} {entity_id} 当前状态为 {state}，不能执行 {trigger}",
            {"entity_type": entity_type, "id": entity_id, "from_state": from_state, "trigger": trigger},
        )


class DomainValidationError(PmsError):
    error_code = ErrorKind.VALIDATION_ERROR

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(reason, {"field": field})


class RateNotFoundError(PmsError):
    error_code = ErrorKind.RATE_NOT_FOUND

    def __init__(self, rate_plan_id: int, room_type_id: int):
        self.rate_plan_id = rate_plan_id
        self.room_type_id = room_type_id
        super().__init__(
            f"价格方案 {rate_plan_id} 未设置房型 {room_type_id} 的价格",
            {"rate_plan_id": rate_plan_id, "room_type_id": room_type_id},
        )


class InvoiceClosedError(PmsError):
    error_code = ErrorKind.INVOICE_CLOSED

    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(f"账单 {invoice_id} 已结清，不能修改明细", {"invoice_id": invoice_id})


class AlreadyPaidError(PmsError):
    error_code = ErrorKind.ALREADY_PAID

    def __init__(self, invoice_id: int):
        self.invoice_id = invoice_id
        super().__init__(f"账单 {invoice_id} 已支付", {"invoice_id": invoice_id})


class InUseError(PmsError):
    error_code = ErrorKind.IN_USE

    def __init__(self, entity_type: str, entity_id: int, referrer_count: int,
                 referrer_type: str = "Reservation"):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.referrer_count = referrer_count
        self.referrer_type = referrer_type
        super().__init__(
            f"{entity_type} {entity_id} 仍被 {referrer_count} 个 {referrer_type} 引用，不能删除",
            {"entity_type": entity_type, "id": entity_id,
             "referrer_type": referrer_type, "referrer_count": referrer_count},
        )


__all__ = [
    "ErrorKind",
    "PmsError",
    "NotFoundError",
    "DuplicateEntityError",
    "DuplicateRateError",
    "DuplicateInvoiceError",
    "ConflictError",
    "InvalidTransitionError",
    "DomainValidationError",
    "RateNotFoundError",
    "InvoiceClosedError",
    "AlreadyPaidError",
    "InUseError",
]
