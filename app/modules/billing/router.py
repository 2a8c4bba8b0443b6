"""
Routers FastAPI del ciclo de cobro y pago

- Condiciones de pago
- Reconciliación manual del estado overdue
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.billing.reconciliation import OverdueReconciler
from app.modules.billing.schemas import PaymentTermCreate, PaymentTermOut, OverdueReconciliationOut
from app.modules.billing.service import PaymentTermService

billing_router = APIRouter(prefix="/billing", tags=["Billing"])


@billing_router.get("/payment-terms", response_model=List[PaymentTermOut])
def list_payment_terms(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return PaymentTermService(db).list_terms()


@billing_router.post("/payment-terms", response_model=PaymentTermOut, status_code=status.HTTP_201_CREATED)
def create_payment_term(
    data: PaymentTermCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return PaymentTermService(db).create_term(data)


@billing_router.post("/reconcile-overdue", response_model=OverdueReconciliationOut)
def reconcile_overdue(
    run_date: Optional[date] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Ejecutar la reconciliación de vencidos

    Es la misma tarea que corre Celery beat; ``run_date`` permite fijar la
    fecha de corte.
    """
    result = OverdueReconciler(db).run(run_date)
    return OverdueReconciliationOut(
        run_date=result.run_date,
        moved_to_overdue=result.moved_to_overdue,
        moved_from_overdue=result.moved_from_overdue
    )
