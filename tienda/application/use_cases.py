from typing import List, Dict, Any
from tienda.application.order_store import OrderStore, build_timeline
from tienda.application.settings_store import SettingsStore
from tienda.domain.entities import parse_status, KnownStatus


class TrackOrderUseCase:
    """
    Caso de uso: Seguimiento de un pedido por su número.
    Depende de OrderStore y SettingsStore (patrón de inyección de dependencias).
    """

    def __init__(self, order_store: OrderStore, settings_store: SettingsStore):
        self.order_store = order_store
        self.settings_store = settings_store

    def execute(self, order_id: str) -> Dict[str, Any]:
        """
        Busca el pedido (sin distinguir mayúsculas) y arma la vista de seguimiento.
        Lanza NotFound si el número no existe.
        """
        # 1. Obtener el pedido
        order = self.order_store.find_by_id(order_id)
        settings = self.settings_store.get()

        # 2. Resolver el estado contra el vocabulario configurado
        status = parse_status(order.status, settings)

        # 3. Línea de tiempo por posición (no por historial)
        return {
            "order": order.to_dict(),
            "status_label": status.label,
            "status_color": self.settings_store.status_color(order.status),
            "is_known_status": isinstance(status, KnownStatus),
            "timeline": [step.to_dict() for step in build_timeline(order.status, settings)],
        }


class SearchOrdersUseCase:
    """
    Caso de uso: Listado de pedidos del panel de administración con buscador.
    """

    def __init__(self, order_store: OrderStore, settings_store: SettingsStore):
        self.order_store = order_store
        self.settings_store = settings_store

    def execute(self, query: str = "") -> List[Dict[str, Any]]:
        orders = self.order_store.search(query)

        formatted_orders = []
        for order in orders:
            data = order.to_dict()
            data["status_label"] = self.settings_store.status_label(order.status)
            data["status_color"] = self.settings_store.status_color(order.status)
            formatted_orders.append(data)
        return formatted_orders
