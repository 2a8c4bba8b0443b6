"""
Cálculo de líneas y totales de documentos.

Dos convenciones de IVA, resueltas una sola vez por familia de documento:

- PER_LINE (facturas de venta): cada línea lleva su tarifa y
  ``line_subtotal = cantidad * precio * (1 + tarifa/100)``.
- DOCUMENT (facturas de proveedor): las líneas van sin impuesto y el
  impuesto se calcula una vez sobre el subtotal con la tarifa del documento.

Toda modificación recalcula el documento completo. Los montos se redondean
a 2 decimales (ROUND_HALF_UP) únicamente al agregar.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID
import enum

from app.common.exceptions import ValidationError
from app.core.config import settings
from app.modules.billing.states import DocumentFamily

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class TaxMode(enum.Enum):
    PER_LINE = "per_line"
    DOCUMENT = "document"


TAX_MODE_BY_FAMILY = {
    DocumentFamily.RECEIVABLE: TaxMode.PER_LINE,
    DocumentFamily.PAYABLE: TaxMode.DOCUMENT,
}


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class DraftLine:
    product_id: Optional[UUID]
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    description: Optional[str] = None
    placeholder: bool = False
    base_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    line_subtotal: Decimal = Decimal("0")


@dataclass
class DocumentDraft:
    family: DocumentFamily
    tax_rate: Decimal
    lines: List[DraftLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    @property
    def billable_lines(self) -> List[DraftLine]:
        return [line for line in self.lines if not line.placeholder]


class LineItemCalculator:
    """Construye y recalcula borradores de documento."""

    def __init__(self, family: DocumentFamily):
        self.family = family
        self.mode = TAX_MODE_BY_FAMILY[family]

    def new_draft(self, tax_rate: Optional[Decimal] = None) -> DocumentDraft:
        rate = Decimal(tax_rate) if tax_rate is not None else settings.DEFAULT_TAX_RATE
        self._validate_rate(rate)
        return DocumentDraft(family=self.family, tax_rate=rate)

    def add_line(
        self,
        draft: DocumentDraft,
        product_id: Optional[UUID],
        quantity: Decimal,
        unit_price: Decimal,
        tax_rate: Optional[Decimal] = None,
        description: Optional[str] = None
    ) -> DocumentDraft:
        quantity = Decimal(quantity)
        unit_price = Decimal(unit_price)
        if quantity <= 0:
            raise ValidationError(
                "La cantidad de una línea facturable debe ser mayor a 0",
                {"quantity": str(quantity), "line_index": len(draft.lines)}
            )
        if unit_price < 0:
            raise ValidationError(
                "El precio unitario no puede ser negativo",
                {"unit_price": str(unit_price), "line_index": len(draft.lines)}
            )
        rate = Decimal(tax_rate) if tax_rate is not None else draft.tax_rate
        self._validate_rate(rate)

        draft.lines.append(DraftLine(
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            tax_rate=rate,
            description=description
        ))
        return self.recalculate(draft)

    def add_placeholder(
        self,
        draft: DocumentDraft,
        product_id: Optional[UUID] = None,
        description: Optional[str] = None
    ) -> DocumentDraft:
        """Línea vacía de edición (cantidad 0), excluida de los totales."""
        draft.lines.append(DraftLine(
            product_id=product_id,
            quantity=Decimal("0"),
            unit_price=Decimal("0"),
            tax_rate=draft.tax_rate,
            description=description,
            placeholder=True
        ))
        return self.recalculate(draft)

    def remove_line(self, draft: DocumentDraft, index: int) -> DocumentDraft:
        if index < 0 or index >= len(draft.lines):
            raise ValidationError("Índice de línea fuera de rango", {"index": index, "lines": len(draft.lines)})
        del draft.lines[index]
        return self.recalculate(draft)

    def recalculate(self, draft: DocumentDraft) -> DocumentDraft:
        base_sum = Decimal("0")
        line_tax_sum = Decimal("0")

        for line in draft.lines:
            if line.placeholder:
                line.base_amount = line.tax_amount = line.line_subtotal = Decimal("0")
                continue
            base = line.quantity * line.unit_price
            if self.mode == TaxMode.PER_LINE:
                tax = base * line.tax_rate / HUNDRED
            else:
                tax = Decimal("0")
            base_sum += base
            line_tax_sum += tax
            line.base_amount = quantize_money(base)
            line.tax_amount = quantize_money(tax)
            line.line_subtotal = quantize_money(base + tax)

        draft.subtotal = quantize_money(base_sum)
        if self.mode == TaxMode.PER_LINE:
            draft.tax_amount = quantize_money(line_tax_sum)
        else:
            draft.tax_amount = quantize_money(draft.subtotal * draft.tax_rate / HUNDRED)
        draft.total = draft.subtotal + draft.tax_amount
        return draft

    def finalize(self, draft: DocumentDraft) -> DocumentDraft:
        """Valida que el borrador pueda persistirse como documento."""
        placeholders = [i for i, line in enumerate(draft.lines) if line.placeholder]
        if placeholders:
            raise ValidationError(
                "El documento tiene líneas sin cantidad; complételas o elimínelas",
                {"line_indexes": placeholders}
            )
        if not draft.lines:
            raise ValidationError("El documento debe incluir al menos una línea")
        return self.recalculate(draft)

    def _validate_rate(self, rate: Decimal) -> None:
        if rate < 0 or rate > HUNDRED:
            raise ValidationError("La tarifa de impuesto debe estar entre 0 y 100", {"tax_rate": str(rate)})
