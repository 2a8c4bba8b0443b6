"""
Consecutivo y clave numérica de comprobantes electrónicos (Hacienda CR).

Consecutivo (20): sucursal(3) + terminal(5) + tipo de comprobante(2) + número(10)
Clave (50): país(3) + día(2) + mes(2) + año(2) + identificación emisor(12)
            + consecutivo(20) + situación(1) + código de seguridad(8)
"""
from datetime import date
from typing import Optional
import secrets

from app.core.config import settings

DOCUMENT_TYPE_INVOICE = "01"   # Factura electrónica
DOCUMENT_TYPE_TICKET = "04"    # Tiquete electrónico

SITUATION_NORMAL = "1"
SITUATION_CONTINGENCY = "2"
SITUATION_NO_INTERNET = "3"


def build_consecutive(
    number: int,
    document_type: str = DOCUMENT_TYPE_INVOICE,
    branch: Optional[str] = None,
    terminal: Optional[str] = None
) -> str:
    branch = (branch or settings.HACIENDA_BRANCH).zfill(3)[:3]
    terminal = (terminal or settings.HACIENDA_TERMINAL).zfill(5)[:5]
    return f"{branch}{terminal}{document_type.zfill(2)}{str(number).zfill(10)[-10:]}"


def generate_security_code() -> str:
    return f"{secrets.randbelow(10 ** 8):08d}"


def generate_clave(
    issue_date: date,
    emitter_id_number: str,
    consecutive: str,
    situation: str = SITUATION_NORMAL,
    security_code: Optional[str] = None,
    country_code: Optional[str] = None
) -> str:
    country = (country_code or settings.HACIENDA_COUNTRY_CODE).zfill(3)
    emitter = "".join(ch for ch in emitter_id_number if ch.isdigit()).zfill(12)[-12:]
    consecutive = consecutive[:20].zfill(20)
    security_code = (security_code or generate_security_code()).zfill(8)[-8:]
    clave = (
        f"{country}{issue_date.day:02d}{issue_date.month:02d}{issue_date.year % 100:02d}"
        f"{emitter}{consecutive}{situation[:1]}{security_code}"
    )
    if len(clave) != 50:
        raise ValueError(f"Clave generada con longitud {len(clave)}, se esperaban 50")
    return clave
