"""
Validadores específicos para Costa Rica
"""
import re
from typing import Optional


# Longitudes válidas por tipo de identificación (catálogo de Hacienda)
ID_LENGTHS = {
    "01": (9,),       # Cédula física
    "02": (10,),      # Cédula jurídica
    "03": (11, 12),   # DIMEX
    "04": (10,),      # NITE
}


def clean_digits(value: str) -> str:
    return re.sub(r'[\s\-\.\(\)]', '', value or '')


def validate_costa_rica_phone(phone: str) -> bool:
    """
    Valida número de teléfono costarricense.
    Formatos válidos:
    - +506XXXXXXXX
    - 506XXXXXXXX
    - XXXXXXXX (8 dígitos, empezando por 2, 4, 5, 6, 7 u 8)
    """
    cleaned = clean_digits(phone)

    patterns = [
        r'^\+506[245678][0-9]{7}$',
        r'^506[245678][0-9]{7}$',
        r'^[245678][0-9]{7}$',
    ]

    return any(re.match(pattern, cleaned) for pattern in patterns)


def format_costa_rica_phone(phone: str) -> str:
    """Formatea teléfono a +506XXXXXXXX"""
    cleaned = clean_digits(phone).lstrip('+')
    if cleaned.startswith('506') and len(cleaned) == 11:
        cleaned = cleaned[3:]
    return f"+506{cleaned}"


def validate_costa_rica_id(id_type: Optional[str], id_number: str) -> bool:
    """
    Valida número de identificación según su tipo.
    - Solo dígitos
    - Longitud según ID_LENGTHS
    - Sin tipo: se acepta cualquier longitud entre 9 y 12
    """
    cleaned = clean_digits(id_number)
    if not cleaned.isdigit():
        return False
    if id_type is None:
        return 9 <= len(cleaned) <= 12
    lengths = ID_LENGTHS.get(id_type)
    if lengths is None:
        return False
    return len(cleaned) in lengths


def validate_fiscal_code(code: Optional[str], length: int = 13) -> bool:
    """Código CABYS: exactamente `length` dígitos."""
    if not code:
        return False
    return code.isdigit() and len(code) == length


def validate_email(email: Optional[str]) -> bool:
    if not email or not email.strip():
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email.strip()) is not None
