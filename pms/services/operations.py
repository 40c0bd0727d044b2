"""
pms/services/operations.py

预订核心的对外操作面

每个方法都返回 OperationResult：
- 成功：value 为实体（或查询结果）
- 业务规则违例：回滚会话，记录 WARNING，error 为带类型的 PmsError
- 其他异常（数据库故障等）回滚后继续向上抛出
"""
from datetime import date
from decimal import Decimal
from typing import Any, Callable, List, Optional
import logging

from sqlalchemy.orm import Session

from pms.engine.clock import Clock, system_clock
from pms.engine.result import OperationResult
from pms.errors import NotFoundError, PmsError
from pms.models.ontology import Invoice, Reservation, ReservationStatus
from pms.models.schemas import (
    InvoiceItemCreate, RatePlanCreate, RatePlanUpdate, ReservationCreate, ReservationUpdate
)
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.invoice_service import InvoiceService
from pms.services.rate_plan_service import RatePlanService
from pms.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)


class BookingOperations:
    """
    预订核心操作面

    Example:
        >>> ops = BookingOperations(db, clock=FixedClock(datetime(2024, 2, 20)))
        >>> result = ops.create_reservation(data, actor)
        >>> if not result.success:
        ...     print(result.error_kind)
    """

    def __init__(self, db: Session, audit: Optional[AuditService] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.audit = audit or AuditService(clock=self.clock)
        self.reservations = ReservationService(db, audit=self.audit, clock=self.clock)
        self.invoices = InvoiceService(db, audit=self.audit, clock=self.clock)
        self.rate_plans = RatePlanService(db, audit=self.audit)

    def _run(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> OperationResult:
        try:
            return OperationResult.ok(func(*args, **kwargs))
        except PmsError as e:
            self.db.rollback()
            logger.warning(f"{operation} rejected: [{e.error_code.value}] {e.message}")
            return OperationResult.fail(e)
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _found(entity_type: str, identifier: Any, value: Any) -> OperationResult:
        if value is None:
            return OperationResult.fail(NotFoundError(entity_type, identifier))
        return OperationResult.ok(value)

    # ========== 预订 ==========

    def create_reservation(self, data: ReservationCreate,
                           actor: ActorContext) -> OperationResult[Reservation]:
        return self._run("create_reservation", self.reservations.create_reservation, data, actor)

    def check_in(self, reservation_id: int, actor: ActorContext) -> OperationResult[Reservation]:
        return self._run("check_in", self.reservations.check_in, reservation_id, actor)

    def check_out(self, reservation_id: int, actor: ActorContext) -> OperationResult[Reservation]:
        return self._run("check_out", self.reservations.check_out, reservation_id, actor)

    def cancel_reservation(self, reservation_id: int, actor: ActorContext,
                           reason: Optional[str] = None) -> OperationResult[Reservation]:
        return self._run("cancel_reservation", self.reservations.cancel_reservation,
                         reservation_id, actor, reason)

    def update_reservation(self, reservation_id: int, data: ReservationUpdate,
                           actor: ActorContext) -> OperationResult[Reservation]:
        return self._run("update_reservation", self.reservations.update_reservation,
                         reservation_id, data, actor)

    def get_reservation(self, reservation_id: int) -> OperationResult[Reservation]:
        return self._found("Reservation", reservation_id,
                           self.reservations.get_reservation(reservation_id))

    def get_reservation_by_no(self, reservation_no: str) -> OperationResult[Reservation]:
        return self._found("Reservation", reservation_no,
                           self.reservations.get_reservation_by_no(reservation_no))

    def get_reservations_by_status(self, status: Optional[ReservationStatus] = None
                                   ) -> OperationResult[List[Reservation]]:
        return OperationResult.ok(self.reservations.get_reservations(status=status))

    def get_reservations_by_date_range(self, start: date, end: date
                                       ) -> OperationResult[List[Reservation]]:
        return OperationResult.ok(self.reservations.get_reservations_by_date_range(start, end))

    def get_reservations_by_guest(self, guest_id: int) -> OperationResult[List[Reservation]]:
        return OperationResult.ok(self.reservations.get_reservations(guest_id=guest_id))

    def get_today_arrivals(self) -> OperationResult[List[Reservation]]:
        return OperationResult.ok(self.reservations.get_today_arrivals())

    # ========== 账单 ==========

    def generate_invoice(self, reservation_id: int, actor: ActorContext) -> OperationResult[Invoice]:
        return self._run("generate_invoice", self.invoices.generate_invoice, reservation_id, actor)

    def add_invoice_item(self, invoice_id: int, data: InvoiceItemCreate,
                         actor: ActorContext) -> OperationResult[Invoice]:
        return self._run("add_invoice_item", self.invoices.add_item, invoice_id, data, actor)

    def remove_invoice_item(self, invoice_id: int, item_id: int,
                            actor: ActorContext) -> OperationResult[Invoice]:
        return self._run("remove_invoice_item", self.invoices.remove_item, invoice_id, item_id, actor)

    def mark_invoice_paid(self, invoice_id: int, payment_method: str,
                          actor: ActorContext) -> OperationResult[Invoice]:
        return self._run("mark_invoice_paid", self.invoices.mark_paid, invoice_id, payment_method, actor)

    def get_invoice(self, invoice_id: int) -> OperationResult[Invoice]:
        return self._found("Invoice", invoice_id, self.invoices.get_invoice(invoice_id))

    def get_invoice_by_no(self, invoice_no: str) -> OperationResult[Invoice]:
        return self._found("Invoice", invoice_no, self.invoices.get_invoice_by_no(invoice_no))

    def get_invoices(self) -> OperationResult[List[Invoice]]:
        return OperationResult.ok(self.invoices.get_invoices())

    # ========== 价格方案 ==========

    def create_rate_plan(self, data: RatePlanCreate, actor: ActorContext) -> OperationResult:
        return self._run("create_rate_plan", self.rate_plans.create_rate_plan, data, actor)

    def update_rate_plan(self, rate_plan_id: int, data: RatePlanUpdate,
                         actor: ActorContext) -> OperationResult:
        return self._run("update_rate_plan", self.rate_plans.update_rate_plan, rate_plan_id, data, actor)

    def add_rate(self, rate_plan_id: int, room_type_id: int, rate: Decimal,
                 actor: ActorContext) -> OperationResult:
        return self._run("add_rate", self.rate_plans.add_rate, rate_plan_id, room_type_id, rate, actor)

    def update_rate(self, rate_plan_id: int, room_type_id: int, rate: Decimal,
                    actor: ActorContext) -> OperationResult:
        return self._run("update_rate", self.rate_plans.update_rate, rate_plan_id, room_type_id, rate, actor)

    def remove_rate(self, rate_plan_id: int, room_type_id: int, actor: ActorContext) -> OperationResult:
        return self._run("remove_rate", self.rate_plans.remove_rate, rate_plan_id, room_type_id, actor)

    def delete_rate_plan(self, rate_plan_id: int, actor: ActorContext) -> OperationResult:
        return self._run("delete_rate_plan", self.rate_plans.delete_rate_plan, rate_plan_id, actor)

    def get_rate(self, rate_plan_id: int, room_type_id: int) -> OperationResult[Decimal]:
        return self._run("get_rate", self.rate_plans.get_rate, rate_plan_id, room_type_id)
