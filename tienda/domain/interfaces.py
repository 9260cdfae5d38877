from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Protocol, runtime_checkable
from .entities import Product, Settings, Order, OrderItem, Customer


class ProductRepository(ABC):
    """Contrato de acceso a datos del catálogo."""

    @abstractmethod
    def list_products(self) -> List[Product]:
        pass

    @abstractmethod
    def insert_product(self, product: Product) -> Product:
        """Inserta el producto y lo retorna con su id asignado."""
        pass

    @abstractmethod
    def update_product(self, product: Product) -> None:
        pass

    @abstractmethod
    def delete_product(self, product_id: str) -> bool:
        """Retorna False si no existía."""
        pass


class SettingsRepository(ABC):
    """Contrato para el registro único de configuración."""

    @abstractmethod
    def get_settings(self) -> Optional[Settings]:
        """Retorna None si todavía no se guardó ninguna configuración."""
        pass

    @abstractmethod
    def save_settings(self, settings: Settings) -> None:
        """Reemplaza el registro completo."""
        pass


class OrderRepository(ABC):
    """
    Contrato (Interfaz) para la capa de acceso a datos de Pedidos.
    La capa de Aplicación solo conoce esta Interfaz, no la implementación.
    """

    @abstractmethod
    def insert_order(self, order: Order) -> Order:
        """Inserta el pedido (cabecera y líneas) y retorna la entidad creada."""
        pass

    @abstractmethod
    def get_order_by_id(self, order_id: str) -> Optional[Order]:
        """Búsqueda exacta sin distinguir mayúsculas; None si no existe."""
        pass

    @abstractmethod
    def list_orders(self) -> List[Order]:
        """Todos los pedidos, del más nuevo al más viejo."""
        pass

    @abstractmethod
    def update_status(self, order_id: str, status: str) -> bool:
        """Retorna False si el pedido no existe."""
        pass

    @abstractmethod
    def update_tracking_number(self, order_id: str, tracking_number: str) -> bool:
        pass

    @abstractmethod
    def delete_order(self, order_id: str) -> bool:
        pass



class CustomerRepository(ABC):
    """Contrato para las cuentas de clientes registrados."""

    @abstractmethod
    def insert_customer(self, customer: Customer, password_hash: str) -> Customer:
        """Inserta la cuenta y la retorna con su id asignado."""
        pass

    @abstractmethod
    def get_credentials(self, email: str) -> Optional[Tuple[Customer, str]]:
        """(cliente, hash de contraseña) por email sin distinguir mayúsculas; None si no existe."""
        pass

    @abstractmethod
    def get_customer_by_id(self, customer_id: str) -> Optional[Customer]:
        pass


@runtime_checkable
class PaymentPreferenceGateway(Protocol):
    """
    Contrato del servicio externo que crea la preferencia de pago.
    El núcleo no asume nada del proveedor más allá de esta firma.
    """

    def create_preference(self, order_id: str, items: List[OrderItem], return_url: str) -> str:
        """Retorna la URL (init_point) a la que hay que redirigir a la compradora."""
        ...
