from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.audit.schemas import AuditLogOut
from app.modules.audit.service import AuditLogService
from app.modules.billing.documents import DocumentResult
from app.modules.billing.schemas import PaymentCreate, PaymentOut, PaymentResultOut, AnnulRequest
from app.modules.billing.states import DocumentStatus
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceDetail, InvoiceList, InvoiceFilters,
    InvoiceLinesUpdate, InvoiceOperationOut
)

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _operation_out(result: DocumentResult) -> InvoiceOperationOut:
    return InvoiceOperationOut(
        invoice=InvoiceDetail.model_validate(result.document),
        stock=result.stock.to_dict() if result.stock else None,
        warnings=result.warnings
    )


@router.post("/", response_model=InvoiceOperationOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Crear una nueva factura de venta

    - Precio por línea: el indicado, o el especial del cliente, o el de catálogo
    - Se descarga automáticamente el stock de los productos
    - Contado: la factura queda pagada con saldo cero
    """
    return _operation_out(InvoiceService(db).create_invoice(invoice_data, actor))


@router.get("/", response_model=InvoiceList)
def list_invoices(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    start_date: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    customer_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    status: Optional[DocumentStatus] = Query(None, description="Estado visible (overdue incluye vencidas)"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    filters = InvoiceFilters(status=status, customer_id=customer_id, start_date=start_date, end_date=end_date)
    return InvoiceService(db).get_invoices(filters, limit=limit, offset=offset)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return InvoiceService(db).get_invoice_by_id(invoice_id)


@router.put("/{invoice_id}/lines", response_model=InvoiceOperationOut)
def update_invoice_lines(
    invoice_id: UUID,
    data: InvoiceLinesUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Reemplazar las líneas de una factura pendiente sin pagos

    El saldo pendiente vuelve a ser el nuevo total.
    """
    return _operation_out(InvoiceService(db).update_invoice_lines(invoice_id, data.items, actor))


@router.post("/{invoice_id}/annul", response_model=InvoiceOperationOut)
def annul_invoice(
    invoice_id: UUID,
    data: AnnulRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Anular factura

    Revierte el inventario y deja el saldo en cero. Repetir la anulación no tiene efecto.
    """
    return _operation_out(InvoiceService(db).annul_invoice(invoice_id, data.reason, actor))


@router.post("/{invoice_id}/payments", response_model=PaymentResultOut, status_code=status.HTTP_201_CREATED)
def add_payment(
    invoice_id: UUID,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Registrar pago de factura

    El monto no puede exceder el saldo pendiente. El estado pasa a parcial o pagada automáticamente.
    """
    result = InvoiceService(db).add_payment(invoice_id, payment_data, actor)
    return PaymentResultOut(
        payment=PaymentOut.model_validate(result.payment),
        new_balance=result.new_balance,
        new_status=result.new_status,
        warnings=result.warnings
    )


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def get_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return InvoiceService(db).list_payments(invoice_id)


@router.get("/{invoice_id}/history", response_model=List[AuditLogOut])
def get_invoice_history(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Bitácora de cambios de la factura"""
    InvoiceService(db).get_invoice_by_id(invoice_id)
    return AuditLogService(db).get_history("invoices", invoice_id)
