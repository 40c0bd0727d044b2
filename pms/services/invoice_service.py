"""
账单服务 - 本体操作层
管理 Invoice 和 InvoiceItem 对象

金额规则：
- subtotal = Σ 明细 amount
- tax = subtotal × TAX_RATE
- total = subtotal + tax - discount
每次明细变化后重新计算
"""
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pms.config import settings
from pms.engine.audit import AuditEntity, snapshot
from pms.engine.clock import Clock, system_clock
from pms.errors import (
    AlreadyPaidError, DomainValidationError, DuplicateInvoiceError,
    InvoiceClosedError, NotFoundError
)
from pms.models.ontology import (
    Invoice, InvoiceItem, InvoiceItemCategory, InvoiceStatus,
    PaymentStatus, Reservation, Room, RoomType
)
from pms.models.schemas import InvoiceItemCreate
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.rate_plan_service import to_money

logger = logging.getLogger(__name__)


class InvoiceService:
    """账单服务"""

    def __init__(self, db: Session, audit: Optional[AuditService] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.audit = audit or AuditService(clock=self.clock)

    def _generate_invoice_no(self) -> str:
        today = self.clock.today().strftime('%Y%m%d')
        return f"INV{today}{uuid4().hex[:6].upper()}"

    # ========== 查询 ==========

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """获取账单"""
        return self.db.query(Invoice).filter(Invoice.id == invoice_id).first()

    def get_invoice_by_no(self, invoice_no: str) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(Invoice.invoice_no == invoice_no).first()

    def get_invoices_by_reservation(self, reservation_id: int) -> List[Invoice]:
        """根据预订获取账单"""
        return self.db.query(Invoice).filter(Invoice.reservation_id == reservation_id).all()

    def get_invoices_by_status(self, status: InvoiceStatus) -> List[Invoice]:
        return self.db.query(Invoice).filter(
            Invoice.status == status
        ).order_by(Invoice.issued_at.desc(), Invoice.id.desc()).all()

    def get_invoices(self) -> List[Invoice]:
        return self.db.query(Invoice).order_by(Invoice.id.desc()).all()

    def _require_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    def _require_open_invoice(self, invoice_id: int) -> Invoice:
        invoice = self._require_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise InvoiceClosedError(invoice_id)
        return invoice

    @staticmethod
    def _snapshot(invoice: Invoice) -> dict:
        return snapshot(AuditEntity.INVOICE, invoice, item_count=len(invoice.items))

    @staticmethod
    def recalculate(invoice: Invoice) -> None:
        """重新计算账单金额"""
        subtotal = sum((Decimal(item.amount) for item in invoice.items), Decimal("0"))
        discount = Decimal(invoice.discount_amount or 0)
        invoice.subtotal = to_money(subtotal)
        invoice.tax_amount = to_money(subtotal * settings.TAX_RATE)
        invoice.total_amount = to_money(invoice.subtotal + invoice.tax_amount - discount)

    # ========== 生成 ==========

    def generate_invoice(self, reservation_id: int, actor: ActorContext) -> Invoice:
        """
        根据预订生成账单

        房费 = 房间夜价 × 晚数（房间未设夜价时取房型基础价），
        与预订按价格方案计算的总价相互独立
        """
        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            raise NotFoundError("Reservation", reservation_id)

        if self.get_invoices_by_reservation(reservation_id):
            raise DuplicateInvoiceError(reservation_id)

        room = self.db.query(Room).filter(Room.id == reservation.room_id).first()
        if not room:
            raise NotFoundError("Room", reservation.room_id)

        nightly_price = room.price_per_night
        if nightly_price is None:
            room_type = self.db.query(RoomType).filter(RoomType.id == room.room_type_id).first()
            if not room_type:
                raise NotFoundError("RoomType", room.room_type_id)
            nightly_price = room_type.base_price

        nights = reservation.nights
        invoice = Invoice(
            invoice_no=self._generate_invoice_no(),
            reservation_id=reservation.id,
            discount_amount=Decimal("0"),
            status=InvoiceStatus.PENDING,
            issued_at=self.clock.now(),
        )
        invoice.items.append(InvoiceItem(
            description=f"Room charge for {nights} night(s) - {room.room_number}",
            quantity=nights,
            unit_price=to_money(nightly_price),
            amount=to_money(Decimal(nightly_price) * nights),
            category=InvoiceItemCategory.ROOM_CHARGE,
        ))
        self.recalculate(invoice)

        self.db.add(invoice)
        try:
            self.db.commit()
        except IntegrityError:
            # 并发为同一预订生成账单
            self.db.rollback()
            raise DuplicateInvoiceError(reservation_id)
        self.db.refresh(invoice)
        logger.info(
            f"Invoice {invoice.invoice_no} generated for reservation {reservation.reservation_no}: "
            f"total {invoice.total_amount}"
        )

        self.audit.log_create(AuditEntity.INVOICE, invoice.id, actor)
        return invoice

    # ========== 明细 ==========

    def add_item(self, invoice_id: int, data: InvoiceItemCreate, actor: ActorContext) -> Invoice:
        """添加账单明细；amount 为空时取 quantity × unit_price"""
        invoice = self._require_open_invoice(invoice_id)

        if data.quantity is None or data.quantity < 1:
            raise DomainValidationError("quantity", "数量至少为1")
        if data.unit_price is None or data.unit_price < 0:
            raise DomainValidationError("unit_price", "单价不能为负数")

        amount = data.amount if data.amount is not None else data.unit_price * data.quantity

        before = self._snapshot(invoice)
        invoice.items.append(InvoiceItem(
            description=data.description,
            quantity=data.quantity,
            unit_price=to_money(data.unit_price),
            amount=to_money(amount),
            category=data.category,
        ))
        self.recalculate(invoice)

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Item '{data.description}' added to invoice {invoice.invoice_no} by {actor.username}")

        self.audit.log_update(AuditEntity.INVOICE, invoice.id, actor, before, self._snapshot(invoice))
        return invoice

    def remove_item(self, invoice_id: int, item_id: int, actor: ActorContext) -> Invoice:
        """删除账单明细"""
        invoice = self._require_open_invoice(invoice_id)

        item = next((i for i in invoice.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError("InvoiceItem", item_id)

        before = self._snapshot(invoice)
        invoice.items.remove(item)
        self.recalculate(invoice)

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Item {item_id} removed from invoice {invoice.invoice_no} by {actor.username}")

        self.audit.log_update(AuditEntity.INVOICE, invoice.id, actor, before, self._snapshot(invoice))
        return invoice

    # ========== 支付 ==========

    def mark_paid(self, invoice_id: int, payment_method: str, actor: ActorContext) -> Invoice:
        """标记账单已支付，同时更新预订的支付状态"""
        invoice = self._require_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise AlreadyPaidError(invoice_id)
        if not payment_method or not payment_method.strip():
            raise DomainValidationError("payment_method", "支付方式不能为空")

        reservation = self.db.query(Reservation).filter(
            Reservation.id == invoice.reservation_id
        ).first()

        before = self._snapshot(invoice)
        reservation_before = snapshot(AuditEntity.RESERVATION, reservation) if reservation else None

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = self.clock.now()
        invoice.payment_method = payment_method.strip()
        if reservation:
            reservation.payment_status = PaymentStatus.PAID

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_no} paid via {invoice.payment_method} by {actor.username}")

        self.audit.log_update(AuditEntity.INVOICE, invoice.id, actor, before, self._snapshot(invoice))
        if reservation:
            self.audit.log_update(AuditEntity.RESERVATION, reservation.id, actor,
                                  reservation_before, snapshot(AuditEntity.RESERVATION, reservation))
        return invoice
