"""
账单路由
"""
from typing import List
from fastapi import APIRouter, Depends

from pms.models.ontology import InvoiceStatus
from pms.models.schemas import InvoiceItemCreate, InvoiceResponse, PaymentRequest
from pms.routers.common import get_operations, unwrap
from pms.security.auth import get_current_actor
from pms.security.context import ActorContext
from pms.services.operations import BookingOperations

router = APIRouter(prefix="/invoices", tags=["账单管理"])


@router.get("", response_model=List[InvoiceResponse])
def list_invoices(
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取账单列表"""
    return unwrap(ops.get_invoices())


@router.post("/generate/{reservation_id}", response_model=InvoiceResponse, status_code=201)
def generate_invoice(
    reservation_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """根据预订生成账单"""
    return unwrap(ops.generate_invoice(reservation_id, actor))


@router.get("/number/{invoice_no}", response_model=InvoiceResponse)
def get_invoice_by_no(
    invoice_no: str,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """根据账单号获取账单"""
    return unwrap(ops.get_invoice_by_no(invoice_no))


@router.get("/reservation/{reservation_id}", response_model=List[InvoiceResponse])
def get_invoices_by_reservation(
    reservation_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取预订的账单"""
    return ops.invoices.get_invoices_by_reservation(reservation_id)


@router.get("/status/{invoice_status}", response_model=List[InvoiceResponse])
def get_invoices_by_status(
    invoice_status: InvoiceStatus,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """按状态获取账单"""
    return ops.invoices.get_invoices_by_status(invoice_status)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """获取账单详情"""
    return unwrap(ops.get_invoice(invoice_id))


@router.post("/{invoice_id}/items", response_model=InvoiceResponse)
def add_invoice_item(
    invoice_id: int,
    data: InvoiceItemCreate,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """添加账单明细"""
    return unwrap(ops.add_invoice_item(invoice_id, data, actor))


@router.delete("/{invoice_id}/items/{item_id}", response_model=InvoiceResponse)
def remove_invoice_item(
    invoice_id: int,
    item_id: int,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """删除账单明细"""
    return unwrap(ops.remove_invoice_item(invoice_id, item_id, actor))


@router.post("/{invoice_id}/pay", response_model=InvoiceResponse)
def pay_invoice(
    invoice_id: int,
    data: PaymentRequest,
    ops: BookingOperations = Depends(get_operations),
    actor: ActorContext = Depends(get_current_actor)
):
    """标记账单已支付"""
    return unwrap(ops.mark_invoice_paid(invoice_id, data.payment_method, actor))
