"""
Esquemas Pydantic para el módulo de Contactos
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum
from app.common.validators import (
    validate_costa_rica_phone, format_costa_rica_phone, validate_costa_rica_id,
    validate_email, clean_digits
)


class ContactType(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"


class IdType(str, Enum):
    FISICA = "01"
    JURIDICA = "02"
    DIMEX = "03"
    NITE = "04"


class ContactBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Nombre o razón social")
    commercial_name: Optional[str] = Field(None, max_length=200)
    type: Optional[List[ContactType]] = Field(None, description="Tipo de contacto: client, provider o ambos")
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)

    id_type: Optional[IdType] = Field(None, description="Tipo de identificación (01-04)")
    id_number: Optional[str] = Field(None, max_length=20, description="Número de identificación")

    province: Optional[str] = Field(None, max_length=1)
    canton: Optional[str] = Field(None, max_length=2)
    district: Optional[str] = Field(None, max_length=2)
    other_signs: Optional[str] = None

    payment_terms_days: int = Field(0, ge=0, le=365, description="Días de plazo de pago")
    notes: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        if v and v.strip() and not validate_email(v):
            raise ValueError('Email debe tener formato válido')
        return v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        if v is None or v.strip() == "":
            return v
        if not validate_costa_rica_phone(v):
            raise ValueError('Teléfono inválido. Use formato costarricense: +506XXXXXXXX u 8 dígitos')
        return format_costa_rica_phone(v)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v):
        # Si no se especifica, por defecto es cliente
        if not v:
            return [ContactType.CLIENT]
        seen = []
        for contact_type in v:
            if contact_type not in seen:
                seen.append(contact_type)
        return seen

    @model_validator(mode='after')
    def validate_identification(self):
        if self.id_number:
            id_type = self.id_type.value if self.id_type else None
            if not validate_costa_rica_id(id_type, self.id_number):
                raise ValueError(f'Número de identificación inválido para el tipo {id_type}')
            self.id_number = clean_digits(self.id_number)
        return self


class ContactCreate(ContactBase):
    pass


class ContactUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    commercial_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    province: Optional[str] = Field(None, max_length=1)
    canton: Optional[str] = Field(None, max_length=2)
    district: Optional[str] = Field(None, max_length=2)
    other_signs: Optional[str] = None
    payment_terms_days: Optional[int] = Field(None, ge=0, le=365)
    notes: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        if v and v.strip() and not validate_email(v):
            raise ValueError('Email debe tener formato válido')
        return v


class ContactOut(BaseModel):
    id: UUID
    name: str
    commercial_name: Optional[str] = None
    type: List[str]
    email: Optional[str] = None
    phone: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    province: Optional[str] = None
    canton: Optional[str] = None
    district: Optional[str] = None
    other_signs: Optional[str] = None
    payment_terms_days: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ContactList(BaseModel):
    contacts: List[ContactOut]
    total: int
    limit: int
    offset: int
