from decimal import Decimal
from typing import List, Optional

from tienda.domain.entities import Product, Variant, Settings, CartLine, OrderItem
from tienda.domain.errors import VacationModeError, ValidationError, NotFound
from tienda.application.pricing import purchasable_price, cart_subtotal


class Cart:
    """
    Carrito efímero de una sesión de compra.
    Toda validación ocurre antes de tocar las líneas: un agregado rechazado
    deja el carrito exactamente como estaba.
    """

    def __init__(self, lines: Optional[List[CartLine]] = None):
        self.lines: List[CartLine] = list(lines or [])

    def add(self, product: Product, settings: Settings, variant: Optional[Variant] = None,
            quantity: int = 1) -> CartLine:
        if settings.is_vacation_mode:
            raise VacationModeError()
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("La cantidad debe ser un entero positivo.")
        price = purchasable_price(product, variant)

        size = variant.size if variant else None
        name = f"{product.name} - {size}" if size else product.name
        candidate = CartLine(product_id=str(product.id), name=name, unit_price=price, quantity=quantity, size=size)

        for line in self.lines:
            if line.key == candidate.key:
                line.quantity += quantity
                return line
        self.lines.append(candidate)
        return candidate

    def update_quantity(self, key: str, delta: int) -> None:
        """Suma o resta unidades; una línea que llega a 0 se quita."""
        for line in self.lines:
            if line.key == key:
                line.quantity = max(0, line.quantity + delta)
                break
        else:
            raise NotFound(f"El producto {key} no está en el carrito.")
        self.lines = [line for line in self.lines if line.quantity > 0]

    def subtotal(self) -> Decimal:
        return cart_subtotal(self.lines)

    def count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def clear(self) -> None:
        self.lines = []

    def to_order_items(self) -> List[OrderItem]:
        return [line.to_order_item() for line in self.lines]
