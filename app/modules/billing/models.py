from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


class PaymentMethod(enum.Enum):
    """Medios de pago (catálogo de Hacienda)"""
    CASH = "01"          # Efectivo
    CARD = "02"          # Tarjeta
    TRANSFER = "03"      # Transferencia
    CHECK = "04"         # Cheque
    THIRD_PARTY = "05"   # Recaudado por tercero


class SaleCondition(enum.Enum):
    """Condición de venta (catálogo de Hacienda)"""
    CASH = "01"             # Contado
    CREDIT = "02"           # Crédito
    CONSIGNMENT = "03"      # Consignación
    LAYAWAY = "04"          # Apartado
    LEASE_OPTION = "05"     # Arrendamiento con opción de compra
    FINANCIAL_LEASE = "06"  # Arrendamiento en función financiera
    OTHER = "99"


class PaymentTerm(Base, TimestampMixin):
    """Condición de pago asignable a un documento."""
    __tablename__ = "payment_terms"

    id = Column(Uuid, primary_key=True, default=uuid4)
    code = Column(String(10), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    sale_condition = Column(String(2), nullable=False, default=SaleCondition.CREDIT.value)
    credit_days = Column(Integer, nullable=False, default=0)
    is_cash = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


DEFAULT_PAYMENT_TERMS = [
    {"code": "01", "name": "Contado", "sale_condition": SaleCondition.CASH.value, "credit_days": 0, "is_cash": True},
    {"code": "02-15", "name": "Crédito 15 días", "sale_condition": SaleCondition.CREDIT.value, "credit_days": 15, "is_cash": False},
    {"code": "02-30", "name": "Crédito 30 días", "sale_condition": SaleCondition.CREDIT.value, "credit_days": 30, "is_cash": False},
    {"code": "02-60", "name": "Crédito 60 días", "sale_condition": SaleCondition.CREDIT.value, "credit_days": 60, "is_cash": False},
]
