"""
Routers FastAPI para facturación electrónica

- Perfil del emisor
- Catálogo CABYS
- Envío y consulta de estado de facturas
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.common.exceptions import NotFoundError
from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.fiscal.schemas import (
    EmitterProfileIn, EmitterProfileOut, FiscalCodeCreate, FiscalCodeOut,
    FiscalStatusOut, SubmissionQueuedOut
)
from app.modules.fiscal.service import FiscalCatalogService, FiscalSubmissionService
from app.modules.fiscal.tasks import submit_invoice_task

fiscal_router = APIRouter(prefix="/fiscal", tags=["Fiscal"])


def _status_out(invoice) -> FiscalStatusOut:
    return FiscalStatusOut(
        invoice_id=invoice.id,
        number=invoice.number,
        consecutive=invoice.consecutive,
        clave=invoice.clave,
        fiscal_status=invoice.fiscal_status,
        fiscal_submitted_at=invoice.fiscal_submitted_at,
        fiscal_reference=invoice.fiscal_reference,
        fiscal_message=invoice.fiscal_message
    )


# ===== EMITTER PROFILE =====

@fiscal_router.get("/emitter-profile", response_model=EmitterProfileOut)
def get_emitter_profile(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return FiscalCatalogService(db).require_emitter_profile()


@fiscal_router.put("/emitter-profile", response_model=EmitterProfileOut)
def save_emitter_profile(
    data: EmitterProfileIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return FiscalCatalogService(db).save_emitter_profile(data)


# ===== FISCAL CODES =====

@fiscal_router.get("/codes", response_model=List[FiscalCodeOut])
def list_fiscal_codes(
    search: Optional[str] = Query(None, description="Código o parte de la descripción"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return FiscalCatalogService(db).get_fiscal_codes(search, limit=limit, offset=offset)


@fiscal_router.post("/codes", response_model=FiscalCodeOut, status_code=status.HTTP_201_CREATED)
def create_fiscal_code(
    data: FiscalCodeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return FiscalCatalogService(db).create_fiscal_code(data)


@fiscal_router.get("/codes/{code}", response_model=FiscalCodeOut)
def get_fiscal_code(
    code: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    fiscal_code = FiscalCatalogService(db).lookup_fiscal_code(code)
    if fiscal_code is None:
        raise NotFoundError("Código CABYS", code)
    return fiscal_code


# ===== SUBMISSION =====

@fiscal_router.post("/invoices/{invoice_id}/submit", response_model=FiscalStatusOut)
def submit_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Enviar factura a Hacienda de forma síncrona

    Devuelve el estado fiscal resultante. Si faltan datos fiscales responde
    400 con la lista completa de problemas.
    """
    invoice, _ = FiscalSubmissionService(db).submit(invoice_id, actor)
    return _status_out(invoice)


@fiscal_router.post("/invoices/{invoice_id}/submit-async", response_model=SubmissionQueuedOut, status_code=status.HTTP_202_ACCEPTED)
def submit_invoice_async(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    FiscalSubmissionService(db).get_invoice(invoice_id)
    task = submit_invoice_task.delay(str(invoice_id))
    return SubmissionQueuedOut(invoice_id=invoice_id, task_id=task.id, message="Envío a Hacienda en cola")


@fiscal_router.get("/invoices/{invoice_id}/status", response_model=FiscalStatusOut)
def get_fiscal_status(
    invoice_id: UUID,
    refresh: bool = Query(False, description="Consultar a Hacienda antes de responder"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    service = FiscalSubmissionService(db)
    if refresh:
        invoice, _ = service.refresh_status(invoice_id, actor)
    else:
        invoice = service.get_invoice(invoice_id)
    return _status_out(invoice)
