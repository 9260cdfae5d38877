"""Motor de precios: funciones puras, sin efectos secundarios."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from tienda.domain.entities import (
    Product, Variant, Settings, CartLine, to_decimal,
    PAYMENT_MERCADO_PAGO, PAYMENT_BANK_TRANSFER,
)
from tienda.domain.errors import VariantSelectionRequired

CENTS = Decimal('0.01')


def round_money(amount: Decimal) -> Decimal:
    """Redondeo mitad hacia arriba a centavos."""
    return to_decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def unit_price(product: Product, selected_variant: Optional[Variant] = None) -> Decimal:
    """
    Precio a mostrar para un producto.
    Sin variante elegida en un producto con variantes devuelve el mínimo
    ("desde $..."): ese valor sirve para mostrar, nunca para agregar al carrito.
    """
    if selected_variant is not None:
        return selected_variant.price
    if product.has_variants:
        return min(v.price for v in product.variants)
    return product.price


def purchasable_price(product: Product, selected_variant: Optional[Variant] = None) -> Decimal:
    """Precio con el que el producto entra al carrito."""
    if product.has_variants:
        if selected_variant is None or selected_variant not in product.variants:
            raise VariantSelectionRequired(product.name)
    elif selected_variant is not None:
        raise VariantSelectionRequired(product.name)
    return unit_price(product, selected_variant)


def discount_for(payment_method: str, settings: Settings) -> int:
    """Porcentaje de descuento asociado al medio de pago (0 si no tiene)."""
    if payment_method == PAYMENT_MERCADO_PAGO:
        return settings.mercado_pago_discount
    if payment_method == PAYMENT_BANK_TRANSFER:
        return settings.bank_discount
    return 0


def apply_percentage(amount: Decimal, pct: int) -> Decimal:
    return round_money(to_decimal(amount) * (Decimal(100) - Decimal(pct)) / Decimal(100))


def apply_discount(total: Decimal, payment_method: str, settings: Settings) -> Decimal:
    """total * (1 - pct/100), con pct según el medio de pago."""
    return apply_percentage(total, discount_for(payment_method, settings))


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    return sum((line.subtotal for line in lines), Decimal('0'))
