from fastapi import APIRouter, Depends

from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.taxes.calculator import LineItemCalculator
from app.modules.taxes.schemas import CalculationPreviewRequest, CalculationPreviewOut

taxes_router = APIRouter(prefix="/taxes", tags=["Taxes"])


@taxes_router.post("/preview", response_model=CalculationPreviewOut)
def preview_totals(
    request: CalculationPreviewRequest,
    actor: Actor = Depends(get_current_actor)
):
    """
    Calcular totales de un documento sin persistirlo

    - Ventas: IVA por línea (subtotal de línea = cantidad x precio x (1 + IVA))
    - Compras: IVA a nivel de documento sobre el subtotal
    """
    calculator = LineItemCalculator(request.family)
    draft = calculator.new_draft(request.tax_rate)
    for line in request.lines:
        calculator.add_line(
            draft,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            tax_rate=line.tax_rate,
            description=line.description
        )
    return calculator.finalize(draft)
