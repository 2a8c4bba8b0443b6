"""
Cliente HTTP del API de recepción de comprobantes de Hacienda.
"""
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from app.common.exceptions import DependencyError
from app.core.config import settings

logger = logging.getLogger(__name__)


class HaciendaGateway:
    """
    Envía comprobantes firmados y consulta su estado.

    Un timeout o error de transporte se reporta como ``DependencyError``; las
    respuestas HTTP (incluido 400) se devuelven en bruto para que
    ``interpret_response`` las clasifique.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = (base_url or settings.HACIENDA_RECEPCION_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HACIENDA_TIMEOUT_SECONDS
        self.access_token = access_token or settings.HACIENDA_ACCESS_TOKEN
        self.client = client or httpx.Client(timeout=self.timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _raw(self, response: httpx.Response) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"status_code": response.status_code}
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = {"detalle": response.text}
            if isinstance(body, dict):
                raw.update(body)
        for header in ("location", "x-error-cause"):
            if header in response.headers:
                raw[header] = response.headers[header]
        return raw

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout contactando Hacienda ({url}): {e}")
            raise DependencyError("hacienda", f"Hacienda no respondió en {self.timeout} segundos")
        except httpx.TransportError as e:
            logger.error(f"Error de transporte contactando Hacienda ({url}): {e}")
            raise DependencyError("hacienda", f"No fue posible contactar a Hacienda: {e}")

        if response.status_code >= 500 or response.status_code in (401, 403):
            logger.error(f"Hacienda respondió {response.status_code}: {response.text[:500]}")
            raise DependencyError("hacienda", f"Hacienda respondió con error {response.status_code}")
        return response

    def send(self, payload: Dict[str, Any], signed_document: bytes) -> Dict[str, Any]:
        """POST del comprobante firmado al API de recepción"""
        body = {
            "clave": payload["clave"],
            "fecha": payload["issue_datetime"],
            "emisor": {
                "tipoIdentificacion": payload["emitter"]["id_type"],
                "numeroIdentificacion": payload["emitter"]["id_number"],
            },
            "receptor": {
                "tipoIdentificacion": payload["receiver"]["id_type"],
                "numeroIdentificacion": payload["receiver"]["id_number"],
            },
            "comprobanteXml": base64.b64encode(signed_document).decode("ascii"),
        }
        response = self._request("POST", self.base_url, json=body)
        logger.info(f"Comprobante {payload['clave']} enviado a Hacienda: HTTP {response.status_code}")
        raw = self._raw(response)
        raw.setdefault("clave", payload["clave"])
        return raw

    def query_status(self, clave: str) -> Dict[str, Any]:
        """GET del estado de un comprobante enviado"""
        response = self._request("GET", f"{self.base_url}/{clave}")
        raw = self._raw(response)
        raw.setdefault("clave", clave)
        return raw

    def close(self) -> None:
        self.client.close()
