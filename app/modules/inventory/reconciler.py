"""
Reconciliación de inventario a partir de las líneas de un documento.

El signo del movimiento se resuelve una sola vez por familia de documento:

    familia      CONSUME   RESTORE
    receivable   -qty      +qty      (venta / anulación de venta)
    payable      +qty      -qty      (compra / anulación de compra)

Cada línea se aplica dentro de su propio savepoint. Un producto inexistente
marca la línea como ``failed`` sin bloquear las demás; una caída de la base
de datos sí aborta la operación completa.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID
import enum
import logging

from sqlalchemy.orm import Session

from app.common.exceptions import NotFoundError, ValidationError
from app.modules.billing.states import DocumentFamily
from app.modules.inventory.service import InventoryService

logger = logging.getLogger(__name__)


class StockEffect(enum.Enum):
    CONSUME = "consume"  # El documento se registra
    RESTORE = "restore"  # El documento se anula o se reemplazan sus líneas


_SIGNS = {
    (DocumentFamily.RECEIVABLE, StockEffect.CONSUME): -1,
    (DocumentFamily.RECEIVABLE, StockEffect.RESTORE): 1,
    (DocumentFamily.PAYABLE, StockEffect.CONSUME): 1,
    (DocumentFamily.PAYABLE, StockEffect.RESTORE): -1,
}


def stock_sign(family: DocumentFamily, effect: StockEffect) -> int:
    return _SIGNS[(family, effect)]


@dataclass
class StockLineOutcome:
    line_index: int
    product_id: Optional[UUID]
    delta: Decimal
    status: str  # applied | skipped | failed
    error: Optional[str] = None


@dataclass
class StockReconciliationResult:
    outcomes: List[StockLineOutcome] = field(default_factory=list)

    @property
    def failed(self) -> List[StockLineOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    @property
    def applied(self) -> List[StockLineOutcome]:
        return [o for o in self.outcomes if o.status == "applied"]

    @property
    def partial(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> dict:
        return {
            "partial": self.partial,
            "outcomes": [
                {
                    "line_index": o.line_index,
                    "product_id": o.product_id,
                    "delta": o.delta,
                    "status": o.status,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }


class StockReconciler:
    def __init__(self, db: Session, inventory: Optional[InventoryService] = None):
        self.db = db
        self.inventory = inventory or InventoryService(db)

    def apply_stock_delta(
        self,
        family: DocumentFamily,
        line_items: Iterable,
        effect: StockEffect,
        reference: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> StockReconciliationResult:
        """
        Aplica el efecto de inventario de cada línea (``product_id``, ``quantity``).

        No hace commit; el llamador lo incluye en la transacción del documento.
        """
        sign = stock_sign(family, effect)
        result = StockReconciliationResult()

        for index, line in enumerate(line_items):
            product_id = getattr(line, "product_id", None)
            delta = Decimal(line.quantity) * sign

            if product_id is None:
                result.outcomes.append(StockLineOutcome(index, None, delta, "skipped"))
                continue

            try:
                with self.db.begin_nested():
                    self.inventory.adjust_stock(product_id, delta, reference=reference, user_id=user_id)
            except (NotFoundError, ValidationError) as e:
                logger.warning(f"Línea {index} sin efecto de inventario ({reference}): {e.message}")
                result.outcomes.append(StockLineOutcome(index, product_id, delta, "failed", e.message))
                continue

            result.outcomes.append(StockLineOutcome(index, product_id, delta, "applied"))

        if result.partial:
            logger.error(
                f"Reconciliación de inventario parcial para {reference}: "
                f"{len(result.failed)} de {len(result.outcomes)} líneas fallaron"
            )
        return result
