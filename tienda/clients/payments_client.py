"""Cliente HTTP para el servidor de preferencias de Mercado Pago."""

import logging
import requests
from typing import List, Optional

from tienda.config import Config
from tienda.domain.entities import OrderItem
from tienda.domain.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)


class PaymentsClient:
    """
    Cliente para pedir la preferencia de pago (init_point) al servidor de pagos.
    A diferencia de los otros clientes, un fallo nunca se convierte en un valor
    vacío: el checkout necesita saber que no hay URL a la que redirigir.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or Config.PAYMENTS_SERVICE_URL).rstrip('/')
        self.timeout = timeout or Config.PAYMENTS_SERVICE_TIMEOUT

    def create_preference(self, order_id: str, items: List[OrderItem], return_url: str) -> str:
        """
        El endpoint esperado es: POST /create_preference
        Recibe {orderId, items: [{productName, quantity, price}], returnUrl}
        y retorna {"init_point": "<url>"}.
        """
        payload = {
            "orderId": order_id,
            "items": [
                {"productName": i.product_name, "quantity": i.quantity, "price": float(i.price)}
                for i in items
            ],
            "returnUrl": return_url,
        }

        try:
            url = f"{self.base_url}/create_preference"
            response = requests.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error al crear la preferencia de pago para {order_id}: {e}")
            raise ExternalServiceFailure("Hubo un error al conectar con Mercado Pago.") from e
        except ValueError as e:
            logger.error(f"Respuesta no JSON del servidor de pagos para {order_id}: {e}")
            raise ExternalServiceFailure("El servidor de pagos respondió algo inesperado.") from e

        init_point = result.get('init_point') if isinstance(result, dict) else None
        if not init_point:
            logger.error(f"El servidor de pagos no devolvió init_point para {order_id}: {result}")
            raise ExternalServiceFailure("No se pudo obtener el punto de inicio de pago.")
        return init_point
