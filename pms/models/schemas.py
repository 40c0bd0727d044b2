"""
Pydantic 模式定义
用于服务入参与 API 请求/响应验证
"""
import json
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field, field_validator, ConfigDict
from pms.models.ontology import (
    RoomStatus, ReservationStatus, PaymentStatus, InvoiceStatus, AuditAction
)


# ============== 客人 Schemas ==============

class GuestCreate(BaseModel):
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class GuestUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class GuestResponse(GuestCreate):
    id: int
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 房型 / 房间 Schemas ==============

class RoomTypeCreate(BaseModel):
    name: str = Field(..., max_length=50)
    description: Optional[str] = None
    base_price: Decimal = Field(..., ge=0)
    max_occupancy: int = Field(default=2, ge=1)


class RoomTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    max_occupancy: Optional[int] = Field(None, ge=1)


class RoomTypeResponse(RoomTypeCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class RoomCreate(BaseModel):
    room_number: str = Field(..., max_length=20)
    floor: Optional[int] = None
    room_type_id: int
    max_occupancy: Optional[int] = Field(None, ge=1)
    price_per_night: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None


class RoomUpdate(BaseModel):
    """修改房间信息，状态另走 RoomStatusUpdate"""
    room_number: Optional[str] = Field(None, max_length=20)
    floor: Optional[int] = None
    room_type_id: Optional[int] = None
    max_occupancy: Optional[int] = Field(None, ge=1)
    price_per_night: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None


class RoomResponse(BaseModel):
    id: int
    room_number: str
    floor: Optional[int] = None
    room_type_id: int
    status: RoomStatus
    max_occupancy: Optional[int] = None
    price_per_night: Optional[Decimal] = None
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class RoomStatusUpdate(BaseModel):
    status: RoomStatus


# ============== 价格方案 Schemas ==============

class RatePlanRateInput(BaseModel):
    room_type_id: int
    rate: Decimal = Field(..., ge=0)


class RateUpdate(BaseModel):
    rate: Decimal = Field(..., ge=0)


class RatePlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    rates: List[RatePlanRateInput] = Field(default_factory=list)


class RatePlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class RatePlanRateResponse(BaseModel):
    room_type_id: int
    rate: Decimal
    model_config = ConfigDict(from_attributes=True)


class RatePlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    rates: List[RatePlanRateResponse] = Field(default_factory=list)


# ============== 预订 Schemas ==============

class ReservationCreate(BaseModel):
    guest_id: int
    room_id: int
    rate_plan_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int = Field(default=1, ge=1)
    special_requests: Optional[str] = None


class ReservationUpdate(BaseModel):
    guest_id: Optional[int] = None
    room_id: Optional[int] = None
    rate_plan_id: Optional[int] = None
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    guest_count: Optional[int] = Field(None, ge=1)
    special_requests: Optional[str] = None


class ReservationCancel(BaseModel):
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    reservation_no: str
    guest_id: int
    room_id: int
    rate_plan_id: int
    check_in_date: date
    check_out_date: date
    guest_count: int
    status: ReservationStatus
    actual_check_in: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    special_requests: Optional[str] = None
    total_amount: Optional[Decimal] = None
    payment_status: PaymentStatus
    created_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 账单 Schemas ==============

class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    amount: Optional[Decimal] = None      # 为空时取 quantity × unit_price
    category: Optional[str] = Field(None, max_length=50)


class InvoiceItemResponse(BaseModel):
    id: int
    description: str
    quantity: int
    unit_price: Decimal
    amount: Decimal
    category: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: int
    invoice_no: str
    reservation_id: int
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    status: InvoiceStatus
    issued_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    items: List[InvoiceItemResponse] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class PaymentRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)


# ============== 审计 Schemas ==============

class AuditLogResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: Optional[int] = None
    action: AuditAction
    username: str
    timestamp: datetime
    changes: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("changes", mode="before")
    @classmethod
    def parse_changes(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else None
        return v
