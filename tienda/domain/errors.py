"""Errores de dominio de la tienda.

Todas las operaciones del núcleo propagan estos errores hacia la acción
que las inició (ruta HTTP, panel de administración); ninguno se silencia
y ninguno se reintenta automáticamente.
"""


class StoreError(Exception):
    """Base de todos los errores de la tienda."""


class ValidationError(StoreError):
    """Entrada inválida detectada antes de llamar al almacén o a la red."""


class VariantSelectionRequired(ValidationError):
    """El producto tiene variantes y no se eligió ninguna (o no es válida)."""

    def __init__(self, product_name: str):
        super().__init__(f"Elegí un tamaño para '{product_name}' antes de agregarlo al carrito.")
        self.product_name = product_name


class VacationModeError(ValidationError):
    """La tienda está en modo vacaciones: no se aceptan compras."""

    def __init__(self):
        super().__init__("La tienda está de vacaciones. Por el momento no se pueden realizar compras.")


class AuthenticationRequired(ValidationError):
    """La operación exige un cliente registrado (opción Mayorista)."""


class CheckoutInProgress(ValidationError):
    """Ya hay una acción de pago en curso para la misma sesión."""


class StorageFailure(StoreError):
    """Falló la llamada al almacén de datos; la mutación no ocurrió."""


class ExternalServiceFailure(StoreError):
    """El servicio de pagos externo no respondió o respondió algo inutilizable."""


class NotFound(StoreError):
    """La búsqueda (pedido, producto) no encontró nada."""


class AccessDenied(StoreError):
    """Credencial válida pero sin permiso para la operación (panel de administración)."""
