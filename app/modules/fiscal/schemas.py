"""
Esquemas Pydantic para facturación electrónica
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.common.validators import validate_costa_rica_id, validate_email, clean_digits
from app.core.config import settings
from app.modules.billing.states import FiscalStatus
from app.modules.contacts.schemas import IdType


# ===== EMITTER PROFILE =====

class EmitterProfileIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Nombre o razón social del emisor")
    commercial_name: Optional[str] = Field(None, max_length=200)
    id_type: IdType
    id_number: str = Field(..., max_length=20)
    economic_activity_code: Optional[str] = Field(None, max_length=6, description="Código de actividad económica")
    province: Optional[str] = Field(None, max_length=1)
    canton: Optional[str] = Field(None, max_length=2)
    district: Optional[str] = Field(None, max_length=2)
    other_signs: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        if v and not validate_email(v):
            raise ValueError('Email debe tener formato válido')
        return v

    @model_validator(mode='after')
    def validate_identification(self):
        if not validate_costa_rica_id(self.id_type.value, self.id_number):
            raise ValueError(f'Número de identificación inválido para el tipo {self.id_type.value}')
        self.id_number = clean_digits(self.id_number)
        return self


class EmitterProfileOut(BaseModel):
    id: UUID
    name: str
    commercial_name: Optional[str] = None
    id_type: str
    id_number: str
    economic_activity_code: Optional[str] = None
    province: Optional[str] = None
    canton: Optional[str] = None
    district: Optional[str] = None
    other_signs: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== FISCAL CODES (CABYS) =====

class FiscalCodeCreate(BaseModel):
    code: str = Field(..., description="Código CABYS de 13 dígitos")
    description: str = Field(..., min_length=1)
    is_taxed: bool = True

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        v = v.strip()
        if not v.isdigit() or len(v) != settings.FISCAL_CODE_LENGTH:
            raise ValueError(f'El código CABYS debe tener {settings.FISCAL_CODE_LENGTH} dígitos')
        return v


class FiscalCodeOut(BaseModel):
    id: UUID
    code: str
    description: str
    is_taxed: bool
    is_active: bool

    class Config:
        from_attributes = True


# ===== SUBMISSION =====

class FiscalStatusOut(BaseModel):
    invoice_id: UUID
    number: str
    consecutive: str
    clave: Optional[str] = None
    fiscal_status: FiscalStatus
    fiscal_submitted_at: Optional[datetime] = None
    fiscal_reference: Optional[str] = None
    fiscal_message: Optional[str] = None


class SubmissionQueuedOut(BaseModel):
    invoice_id: UUID
    task_id: str
    message: str
