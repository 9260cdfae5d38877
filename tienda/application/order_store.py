import logging
import random
from datetime import datetime, timezone
from typing import List, Optional, Callable

from tienda.domain.interfaces import OrderRepository
from tienda.domain.entities import (
    Order, OrderDraft, Settings, TimelineStep,
    PENDING_STATUS, CANCELLED_STATUS,
)
from tienda.domain.errors import ValidationError, NotFound, StorageFailure

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "ORD-"
MAX_ID_ATTEMPTS = 20


def random_order_id() -> str:
    return f"{ORDER_ID_PREFIX}{random.randint(100000, 999999)}"


def validate_draft(draft: OrderDraft) -> None:
    if not draft.items:
        raise ValidationError("El pedido no tiene productos.")
    for item in draft.items:
        if not item.product_name:
            raise ValidationError("Cada línea del pedido necesita el nombre del producto.")
        if not isinstance(item.quantity, int) or item.quantity <= 0:
            raise ValidationError(f"Cantidad inválida para '{item.product_name}'.")
        if item.price < 0:
            raise ValidationError(f"Precio inválido para '{item.product_name}'.")
    if draft.total < 0:
        raise ValidationError("El total del pedido no puede ser negativo.")


def build_timeline(status: str, settings: Settings) -> List[TimelineStep]:
    """
    Línea de tiempo del seguimiento. Una etapa está completa si su posición es
    menor o igual a la del estado actual en la lista configurada; no hay
    historial, así que volver un estado atrás "descompleta" etapas.
    """
    steps = [s for s in settings.shipping_statuses if s.id != CANCELLED_STATUS]
    current = next((i for i, s in enumerate(steps) if s.id == status), -1)
    return [
        TimelineStep(id=s.id, label=s.label, color=s.color, completed=current >= idx)
        for idx, s in enumerate(steps)
    ]


class OrderStore:
    """Dueño del ciclo de vida de los pedidos."""

    def __init__(self, order_repository: OrderRepository,
                 id_factory: Callable[[], str] = random_order_id,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.repository = order_repository
        self._id_factory = id_factory
        self._clock = clock

    def new_order_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if self.repository.get_order_by_id(candidate) is None:
                return candidate
            logger.warning(f"Id de pedido repetido ({candidate}), se genera otro.")
        raise StorageFailure("No se pudo generar un número de pedido libre.")

    def create(self, draft: OrderDraft, order_id: Optional[str] = None) -> Order:
        """
        Crea el pedido con estado 'pendiente' y fecha actual.
        `order_id` permite usar la referencia ya enviada a Mercado Pago.
        Cualquier error del almacén se propaga: el pedido no se considera hecho.
        """
        validate_draft(draft)
        if order_id is None:
            order_id = self.new_order_id()
        elif self.repository.get_order_by_id(order_id) is not None:
            raise ValidationError(f"Ya existe el pedido {order_id}.")

        customer = draft.customer
        order = Order(
            id=order_id,
            customer_name=customer.name,
            customer_last_name=customer.last_name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_address=customer.address,
            customer_dni=customer.dni,
            date=self._clock(),
            items=list(draft.items),
            total=draft.total,
            status=PENDING_STATUS,
            tracking_number="",
        )
        created = self.repository.insert_order(order)
        logger.info(f"Pedido {created.id} creado por {created.customer_email} (total {created.total}).")
        return created

    def update_status(self, order_id: str, new_status: str) -> None:
        # Sin tabla de transiciones: la administradora puede elegir cualquier estado.
        if not isinstance(new_status, str) or not new_status.strip():
            raise ValidationError("El estado debe ser un texto no vacío.")
        if not self.repository.update_status(order_id, new_status):
            raise NotFound(f"No existe el pedido {order_id}.")
        logger.info(f"Pedido {order_id} pasó a '{new_status}'.")

    def update_tracking(self, order_id: str, value: str) -> None:
        if value is not None and not isinstance(value, str):
            raise ValidationError("El número de seguimiento debe ser texto.")
        if not self.repository.update_tracking_number(order_id, value or ""):
            raise NotFound(f"No existe el pedido {order_id}.")

    def delete(self, order_id: str) -> None:
        if not self.repository.delete_order(order_id):
            raise NotFound(f"No existe el pedido {order_id}.")
        logger.info(f"Pedido {order_id} eliminado.")

    def find_by_id(self, order_id: str) -> Order:
        order = self.repository.get_order_by_id((order_id or "").strip())
        if order is None:
            raise NotFound(f"No encontramos el pedido {order_id}.")
        return order

    def list(self) -> List[Order]:
        return self.repository.list_orders()

    def search(self, query: str) -> List[Order]:
        """Filtro del panel: número, nombre o email (sin mayúsculas) y DNI."""
        orders = self.list()
        if not query:
            return orders
        q = query.lower()
        return [
            o for o in orders
            if q in o.id.lower()
            or q in o.customer_name.lower()
            or q in o.customer_email.lower()
            or (o.customer_dni and query in o.customer_dni)
        ]

    def orders_for_customer(self, email: str) -> List[Order]:
        email = (email or "").lower()
        return [o for o in self.list() if o.customer_email.lower() == email]
