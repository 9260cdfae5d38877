import threading
import unittest
from decimal import Decimal
from unittest.mock import Mock

from tienda.application.cart import Cart
from tienda.application.checkout import (
    CheckoutOrchestrator, STEP_AUTH, STEP_SELECT, STEP_BANK_DETAILS, STEP_EXTERNAL_PAYMENT,
    STEP_PROCESSING, STEP_SUCCESS,
)
from tienda.application.order_store import OrderStore
from tienda.application.settings_store import SettingsStore
from tienda.domain.entities import (
    Product, Settings, Customer, GUEST_NAME,
    PAYMENT_BANK_TRANSFER, PAYMENT_WHOLESALE, PAYMENT_MERCADO_PAGO,
)
from tienda.domain.errors import (
    ValidationError, VacationModeError, AuthenticationRequired, CheckoutInProgress,
    ExternalServiceFailure, StorageFailure, NotFound,
)
from tests.fakes import InMemoryOrderRepository, InMemorySettingsRepository, FakePaymentGateway

MACETA_LISA = Product("1", "Maceta Lisa", "Macetas", "", "", Decimal("4500"))
RETURN_URL = "https://doslidias.example"
REGISTERED = Customer(id="u-1", name="Ana", last_name="Pérez", email="ana@mail.com",
                      phone="1122334455", address="Calle 1", doc_number="30111222")


class CheckoutTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = Settings(bank_discount=10, mercado_pago_discount=5, bank_alias="dos.lidias")
        self.order_repo = InMemoryOrderRepository()
        self.gateway = FakePaymentGateway()
        self.sleep = Mock()
        self.checkout = CheckoutOrchestrator(
            order_store=OrderStore(self.order_repo),
            settings_store=SettingsStore(InMemorySettingsRepository(), initial=self.settings),
            payment_gateway=self.gateway,
            return_url=RETURN_URL,
            processing_delay=5,
            sleep=self.sleep,
        )

    def make_cart(self, quantity=2):
        cart = Cart()
        cart.add(MACETA_LISA, self.settings, quantity=quantity)
        return cart


class TestStart(CheckoutTestCase):

    def test_guest_starts_at_auth(self):
        session = self.checkout.start(self.make_cart())
        self.assertEqual(session.step, STEP_AUTH)
        self.assertEqual(session.subtotal, Decimal("9000"))

    def test_registered_customer_skips_auth(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.assertEqual(session.step, STEP_SELECT)

    def test_empty_cart(self):
        with self.assertRaises(ValidationError):
            self.checkout.start(Cart())

    def test_vacation_mode(self):
        cart = self.make_cart()
        self.settings.is_vacation_mode = True
        with self.assertRaises(VacationModeError):
            self.checkout.start(cart)

    def test_authenticate_from_checkout(self):
        session = self.checkout.start(self.make_cart())
        self.checkout.authenticate(session, REGISTERED)
        self.assertEqual(session.step, STEP_SELECT)
        with self.assertRaises(AuthenticationRequired):
            self.checkout.authenticate(session, Customer(id=None, name="Nadie"))


class TestBankTransfer(CheckoutTestCase):

    def test_guest_bank_transfer_creates_discounted_order(self):
        session = self.checkout.continue_as_guest(self.checkout.start(self.make_cart()))
        self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)

        self.assertEqual(session.step, STEP_BANK_DETAILS)
        self.assertEqual(session.bank_details["bank_alias"], "dos.lidias")
        self.assertEqual(session.total, Decimal("8100.00"))
        self.assertEqual(self.order_repo.orders, [])

        order = self.checkout.confirm(session)

        self.assertEqual(session.step, STEP_SUCCESS)
        self.assertEqual(order.total, Decimal("8100.00"))
        self.assertEqual(order.status, "pendiente")
        self.assertEqual(order.customer_name, GUEST_NAME)
        self.assertEqual([(i.product_name, i.quantity, i.price) for i in order.items],
                         [("Maceta Lisa", 2, Decimal("4500"))])
        self.assertEqual(self.order_repo.orders, [order])

    def test_confirm_twice_creates_one_order(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)
        self.checkout.confirm(session)
        with self.assertRaises(ValidationError):
            self.checkout.confirm(session)
        self.assertEqual(len(self.order_repo.orders), 1)

    def test_confirm_before_selecting(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        with self.assertRaises(ValidationError):
            self.checkout.confirm(session)

    def test_storage_failure_keeps_session_open(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)
        self.order_repo.fail_inserts = True
        with self.assertRaises(StorageFailure):
            self.checkout.confirm(session)
        self.assertEqual(session.step, STEP_BANK_DETAILS)
        self.assertIsNone(session.order)


class TestWholesale(CheckoutTestCase):

    def test_guest_is_sent_to_auth(self):
        session = self.checkout.continue_as_guest(self.checkout.start(self.make_cart()))
        with self.assertRaises(AuthenticationRequired):
            self.checkout.select_method(session, PAYMENT_WHOLESALE)
        self.assertEqual(session.step, STEP_AUTH)
        self.assertEqual(self.order_repo.orders, [])

    def test_registered_customer_full_price_with_delay(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_WHOLESALE)
        self.assertEqual(session.step, STEP_PROCESSING)

        order = self.checkout.confirm(session)

        self.sleep.assert_called_once_with(5)
        self.assertEqual(order.total, Decimal("9000.00"))
        self.assertEqual(order.customer_dni, "30111222")


class TestMercadoPago(CheckoutTestCase):

    def select_mercado_pago(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_MERCADO_PAGO)
        return session

    def test_redirect_without_order(self):
        session = self.select_mercado_pago()

        self.assertEqual(session.step, STEP_EXTERNAL_PAYMENT)
        self.assertEqual(session.redirect_url, f"https://mp.example/checkout/{session.reference}")
        reference, items, return_url = self.gateway.calls[0]
        self.assertEqual(reference, session.reference)
        self.assertEqual(items[0].price, Decimal("4275.00"))
        self.assertEqual(return_url, RETURN_URL)
        self.assertEqual(self.order_repo.orders, [])

    def test_preference_failure_returns_to_select(self):
        self.gateway.fail = True
        session = self.checkout.start(self.make_cart(), REGISTERED)
        with self.assertRaises(ExternalServiceFailure):
            self.checkout.select_method(session, PAYMENT_MERCADO_PAGO)
        self.assertEqual(session.step, STEP_SELECT)
        self.assertIsNone(session.payment_method)
        self.assertEqual(self.order_repo.orders, [])

    def test_return_creates_order_once(self):
        session = self.select_mercado_pago()
        params = {"status": "success", "external_reference": session.reference}

        order = self.checkout.complete_external_payment(params)
        replay = self.checkout.complete_external_payment(params)

        self.assertEqual(order.id, session.reference)
        self.assertEqual(order.total, Decimal("8550.00"))
        self.assertEqual(replay.id, order.id)
        self.assertEqual(len(self.order_repo.orders), 1)
        self.assertEqual(session.step, STEP_SUCCESS)

    def test_return_without_success(self):
        session = self.select_mercado_pago()
        result = self.checkout.complete_external_payment({"status": "failure", "external_reference": session.reference})
        self.assertIsNone(result)
        self.assertEqual(self.order_repo.orders, [])

    def test_return_with_unknown_reference(self):
        with self.assertRaises(ValidationError):
            self.checkout.complete_external_payment({"status": "success", "external_reference": "ORD-000000"})
        with self.assertRaises(ValidationError):
            self.checkout.complete_external_payment({"status": "success"})

    def test_failed_return_can_be_retried(self):
        session = self.select_mercado_pago()
        params = {"status": "success", "orderId": session.reference}
        self.order_repo.fail_inserts = True
        with self.assertRaises(StorageFailure):
            self.checkout.complete_external_payment(params)
        self.order_repo.fail_inserts = False
        self.assertEqual(self.checkout.complete_external_payment(params).id, session.reference)


class TestConcurrencyAndCancel(CheckoutTestCase):

    def test_second_submit_while_in_flight(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_preference(order_id, items, return_url):
            entered.set()
            release.wait(5)
            return "https://mp.example/slow"

        self.gateway.create_preference = slow_preference
        session = self.checkout.start(self.make_cart(), REGISTERED)
        worker = threading.Thread(target=self.checkout.select_method, args=(session, PAYMENT_MERCADO_PAGO))
        worker.start()
        entered.wait(5)
        try:
            self.assertTrue(self.checkout.is_submitting(session))
            with self.assertRaises(CheckoutInProgress):
                self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)
            with self.assertRaises(CheckoutInProgress):
                self.checkout.cancel(session)
        finally:
            release.set()
            worker.join(5)
        self.assertFalse(self.checkout.is_submitting(session))

    def test_cancel_has_no_side_effects(self):
        session = self.checkout.start(self.make_cart())
        self.checkout.continue_as_guest(session)
        self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)
        self.checkout.cancel(session)
        self.assertEqual(self.order_repo.orders, [])
        with self.assertRaises(NotFound):
            self.checkout.get_session(session.id)

    def test_unknown_method(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        with self.assertRaises(ValidationError):
            self.checkout.select_method(session, "Efectivo")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSessionLifetime(CheckoutTestCase):

    def setUp(self):
        super().setUp()
        self.clock = FakeClock()
        self.checkout = CheckoutOrchestrator(
            order_store=OrderStore(self.order_repo),
            settings_store=SettingsStore(InMemorySettingsRepository(), initial=self.settings),
            payment_gateway=self.gateway,
            return_url=RETURN_URL,
            sleep=self.sleep,
            session_ttl=600,
            pending_ttl=3600,
            clock=self.clock,
        )

    def test_confirmed_session_is_released(self):
        for _ in range(20):
            session = self.checkout.start(self.make_cart(), REGISTERED)
            self.checkout.select_method(session, PAYMENT_BANK_TRANSFER)
            self.checkout.confirm(session)
            self.assertEqual(session.step, STEP_SUCCESS)
            with self.assertRaises(NotFound):
                self.checkout.get_session(session.id)
        self.assertEqual(len(self.order_repo.orders), 20)

    def test_paid_session_is_released_after_return(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_MERCADO_PAGO)
        self.checkout.complete_external_payment({"status": "success", "external_reference": session.reference})
        with self.assertRaises(NotFound):
            self.checkout.get_session(session.id)

    def test_abandoned_sessions_expire(self):
        abandoned = self.checkout.start(self.make_cart(), REGISTERED)
        self.clock.now += 601
        fresh = self.checkout.start(self.make_cart(), REGISTERED)

        with self.assertRaises(NotFound):
            self.checkout.get_session(abandoned.id)
        self.assertIs(self.checkout.get_session(fresh.id), fresh)

    def test_unreturned_payments_expire(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_MERCADO_PAGO)
        self.clock.now += 3601
        self.checkout.start(self.make_cart(), REGISTERED)

        with self.assertRaises(ValidationError):
            self.checkout.complete_external_payment({"status": "success", "external_reference": session.reference})
        self.assertEqual(self.order_repo.orders, [])

    def test_recent_payment_survives_session_expiry(self):
        session = self.checkout.start(self.make_cart(), REGISTERED)
        self.checkout.select_method(session, PAYMENT_MERCADO_PAGO)
        self.clock.now += 601
        self.checkout.sweep_expired()

        order = self.checkout.complete_external_payment({"status": "success", "orderId": session.reference})
        self.assertEqual(order.id, session.reference)


if __name__ == '__main__':
    unittest.main()
