from decimal import Decimal

import pytest

from tienda.application.cart import Cart
from tienda.domain.entities import Product, Variant, Settings
from tienda.domain.errors import VacationModeError, VariantSelectionRequired, ValidationError, NotFound

SMALL = Variant("N° 12", Decimal("3500"))
LARGE = Variant("N° 20", Decimal("6800"))
MACETA = Product("1", "Maceta Rayada", "Macetas", "", "", Decimal("0"), [SMALL, LARGE])
PLATO = Product("2", "Plato", "Platos", "", "", Decimal("1500"))


@pytest.fixture
def cart():
    return Cart()


class TestAdd:

    def test_variant_line_name_and_price(self, cart):
        line = cart.add(MACETA, Settings(), SMALL)
        assert line.name == "Maceta Rayada - N° 12"
        assert line.unit_price == Decimal("3500")
        assert line.key == "1:N° 12"

    def test_same_key_merges_quantity(self, cart):
        cart.add(MACETA, Settings(), SMALL)
        cart.add(MACETA, Settings(), SMALL, quantity=2)
        cart.add(MACETA, Settings(), LARGE)
        assert cart.count() == 4
        assert len(cart.lines) == 2

    def test_variant_required(self, cart):
        with pytest.raises(VariantSelectionRequired):
            cart.add(MACETA, Settings())
        assert cart.is_empty()

    def test_vacation_mode_rejects_any_add(self, cart):
        cart.add(PLATO, Settings())
        with pytest.raises(VacationModeError):
            cart.add(PLATO, Settings(is_vacation_mode=True))
        assert cart.count() == 1

    @pytest.mark.parametrize("quantity", [0, -1, "2"])
    def test_invalid_quantity(self, cart, quantity):
        with pytest.raises(ValidationError):
            cart.add(PLATO, Settings(), quantity=quantity)


class TestQuantities:

    def test_update_quantity_and_remove_at_zero(self, cart):
        cart.add(MACETA, Settings(), SMALL, quantity=2)
        cart.add(PLATO, Settings())
        cart.update_quantity("1:N° 12", -1)
        assert cart.count() == 2
        cart.update_quantity("2", -5)
        assert [line.key for line in cart.lines] == ["1:N° 12"]

    def test_update_unknown_line(self, cart):
        with pytest.raises(NotFound):
            cart.update_quantity("9", 1)

    def test_subtotal_and_items(self, cart):
        cart.add(MACETA, Settings(), LARGE, quantity=2)
        cart.add(PLATO, Settings())
        assert cart.subtotal() == Decimal("15100")
        items = cart.to_order_items()
        assert items[0].product_name == "Maceta Rayada - N° 20"
        assert items[0].quantity == 2
        cart.clear()
        assert cart.is_empty()
