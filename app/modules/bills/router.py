"""
Routers FastAPI para el módulo de Gastos (Bills)

- Facturas de proveedor: registro con ingreso de inventario, edición, anulación
- Pagos: registro y control de estados automático
- Notas débito: ajustes que aumentan el saldo de la factura
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.billing.documents import DocumentResult
from app.modules.billing.schemas import PaymentCreate, PaymentOut, PaymentResultOut, AnnulRequest
from app.modules.billing.states import DocumentStatus
from app.modules.bills.service import BillService
from app.modules.bills.schemas import (
    BillCreate, BillDetail, BillList, BillFilters, BillLinesUpdate, BillOperationOut,
    DebitNoteCreate, DebitNoteOut, DebitNoteOperationOut
)

# Router principal
bills_router = APIRouter(prefix="/bills", tags=["Bills"])
debit_notes_router = APIRouter(prefix="/debit-notes", tags=["Debit Notes"])


def _operation_out(result: DocumentResult) -> BillOperationOut:
    return BillOperationOut(
        bill=BillDetail.model_validate(result.document),
        stock=result.stock.to_dict() if result.stock else None,
        warnings=result.warnings
    )


@bills_router.post("/", response_model=BillOperationOut, status_code=status.HTTP_201_CREATED)
def create_bill(
    bill_data: BillCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Registrar factura de proveedor

    Incrementa el inventario de cada línea con producto. El IVA se calcula
    sobre el subtotal con el porcentaje del documento.
    """
    return _operation_out(BillService(db).create_bill(bill_data, actor))


@bills_router.get("/", response_model=BillList)
def list_bills(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    supplier_id: Optional[UUID] = Query(None, description="Filtrar por proveedor"),
    status: Optional[DocumentStatus] = Query(None, description="Estado visible (overdue incluye vencidas)"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    filters = BillFilters(status=status, supplier_id=supplier_id, start_date=start_date, end_date=end_date)
    return BillService(db).get_bills(filters, limit=limit, offset=offset)


@bills_router.get("/{bill_id}", response_model=BillDetail)
def get_bill(
    bill_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return BillService(db).get_bill_by_id(bill_id)


@bills_router.put("/{bill_id}/lines", response_model=BillOperationOut)
def update_bill_lines(
    bill_id: UUID,
    data: BillLinesUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return _operation_out(BillService(db).update_bill_lines(bill_id, data.items, actor))


@bills_router.post("/{bill_id}/annul", response_model=BillOperationOut)
def annul_bill(
    bill_id: UUID,
    data: AnnulRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Anular factura de proveedor

    Revierte el ingreso de inventario y deja el saldo en cero.
    """
    return _operation_out(BillService(db).annul_bill(bill_id, data.reason, actor))


@bills_router.post("/{bill_id}/payments", response_model=PaymentResultOut, status_code=status.HTTP_201_CREATED)
def add_bill_payment(
    bill_id: UUID,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    result = BillService(db).add_payment(bill_id, payment_data, actor)
    return PaymentResultOut(
        payment=PaymentOut.model_validate(result.payment),
        new_balance=result.new_balance,
        new_status=result.new_status,
        warnings=result.warnings
    )


@bills_router.get("/{bill_id}/payments", response_model=List[PaymentOut])
def get_bill_payments(
    bill_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return BillService(db).list_payments(bill_id)


# ===== DEBIT NOTES ENDPOINTS =====

@debit_notes_router.post("/", response_model=DebitNoteOperationOut, status_code=status.HTTP_201_CREATED)
def create_debit_note(
    note_data: DebitNoteCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Registrar nota débito

    Si se indica la factura afectada, su total y saldo pendiente aumentan.
    """
    result = BillService(db).create_debit_note(note_data, actor)
    return DebitNoteOperationOut(debit_note=DebitNoteOut.model_validate(result.document), warnings=result.warnings)


@debit_notes_router.get("/", response_model=List[DebitNoteOut])
def list_debit_notes(
    bill_id: Optional[UUID] = None,
    supplier_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return BillService(db).get_debit_notes(bill_id=bill_id, supplier_id=supplier_id)
