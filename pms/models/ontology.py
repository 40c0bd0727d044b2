"""
业务实体定义
实体扁平存储，彼此只通过 id 列引用；唯一的 ORM 关系是账单拥有的明细集合
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from pms.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    AVAILABLE = "available"      # 可用
    RESERVED = "reserved"        # 已预留
    OCCUPIED = "occupied"        # 入住中
    CLEANING = "cleaning"        # 清洁中
    MAINTENANCE = "maintenance"  # 维修中


class ReservationStatus(str, Enum):
    """预订状态枚举"""
    PENDING = "pending"          # 待确认
    CONFIRMED = "confirmed"      # 已确认
    CHECKED_IN = "checked_in"    # 已入住
    CHECKED_OUT = "checked_out"  # 已退房
    CANCELLED = "cancelled"      # 已取消
    NO_SHOW = "no_show"          # 未到店


# 不参与冲突检测的预订状态
INACTIVE_RESERVATION_STATUSES = (
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
    ReservationStatus.CHECKED_OUT,
)

# 仍持有房间的预订状态
HOLDING_RESERVATION_STATUSES = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
)


class PaymentStatus(str, Enum):
    """预订支付状态"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class InvoiceStatus(str, Enum):
    """账单状态"""
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class AuditAction(str, Enum):
    """审计动作"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class InvoiceItemCategory:
    """账单明细分类（调用方可传入其他值）"""
    ROOM_CHARGE = "ROOM_CHARGE"
    SERVICE = "SERVICE"
    FOOD_BEVERAGE = "FOOD_BEVERAGE"
    OTHER = "OTHER"


# ============== 实体定义 ==============

class Guest(Base):
    """客人"""
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True)
    phone = Column(String(20))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class RoomType(Base):
    """房型 - 房间模板"""
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # 房型名称
    description = Column(Text)
    base_price = Column(Numeric(10, 2), nullable=False)     # 基础价格
    max_occupancy = Column(Integer, default=2)              # 最大入住人数
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Room(Base):
    """房间"""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(20), unique=True, nullable=False)  # 房间号
    floor = Column(Integer)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    max_occupancy = Column(Integer)                                # 为空时不限制
    price_per_night = Column(Numeric(10, 2))                       # 房间自身夜价（账单使用）
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class RatePlan(Base):
    """价格方案 - 房型到夜价的映射表"""
    __tablename__ = "rate_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class RatePlanRate(Base):
    """价格方案中某个房型的夜价"""
    __tablename__ = "rate_plan_rates"
    __table_args__ = (
        UniqueConstraint("rate_plan_id", "room_type_id", name="uq_rate_plan_room_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    rate_plan_id = Column(Integer, ForeignKey("rate_plans.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate = Column(Numeric(10, 2), nullable=False)


class Reservation(Base):
    """预订 - 某位客人在一段日期内预订一间房"""
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_room_dates", "room_id", "check_in_date", "check_out_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_no = Column(String(50), unique=True, nullable=False)  # 预订号
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    rate_plan_id = Column(Integer, ForeignKey("rate_plans.id"), nullable=False)
    check_in_date = Column(Date, nullable=False)         # 入住日期
    check_out_date = Column(Date, nullable=False)        # 离店日期
    guest_count = Column(Integer, nullable=False, default=1)
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.CONFIRMED, nullable=False)
    actual_check_in = Column(DateTime)                   # 实际入住时间
    actual_check_out = Column(DateTime)                  # 实际退房时间
    special_requests = Column(Text)
    total_amount = Column(Numeric(10, 2))                # 按价格方案计算的总价
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    cancel_reason = Column(Text)
    created_by = Column(String(100))                     # 创建人用户名
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days


class Invoice(Base):
    """账单 - 每个预订至多一张"""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_no = Column(String(50), unique=True, nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), unique=True, nullable=False)
    subtotal = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    tax_amount = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    discount_amount = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_amount = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    status = Column(SQLEnum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False)
    issued_at = Column(DateTime)
    paid_at = Column(DateTime)
    payment_method = Column(String(50))                  # CASH, CREDIT_CARD, BANK_TRANSFER ...
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 账单拥有明细（单向）
    items = relationship(
        "InvoiceItem",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )


class InvoiceItem(Base):
    """账单明细；amount 由调用方给出，不要求等于 quantity × unit_price"""
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    category = Column(String(50))


class AuditLog(Base):
    """审计记录（只追加）"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, index=True)
    action = Column(SQLEnum(AuditAction), nullable=False)
    username = Column(String(100), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    changes = Column(Text)                               # UPDATE 的字段级差异(JSON)
    description = Column(String(255))
