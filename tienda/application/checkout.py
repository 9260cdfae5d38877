import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List, Dict, Any, Callable

from tienda.domain.entities import (
    Customer, CustomerSnapshot, Order, OrderDraft, OrderItem,
    PAYMENT_BANK_TRANSFER, PAYMENT_WHOLESALE, PAYMENT_METHODS,
)
from tienda.domain.errors import (
    ValidationError, VacationModeError, AuthenticationRequired, CheckoutInProgress,
    ExternalServiceFailure, NotFound,
)
from tienda.domain.interfaces import PaymentPreferenceGateway
from tienda.application.cart import Cart
from tienda.application.order_store import OrderStore
from tienda.application.settings_store import SettingsStore
from tienda.application.pricing import apply_discount, apply_percentage, discount_for, cart_subtotal

logger = logging.getLogger(__name__)

# Pasos del checkout (los mismos que el modal de la tienda)
STEP_AUTH = "auth"
STEP_SELECT = "select"
STEP_BANK_DETAILS = "bank_details"
STEP_EXTERNAL_PAYMENT = "external_payment"
STEP_PROCESSING = "processing"
STEP_SUCCESS = "success"

RETURN_STATUS_SUCCESS = "success"


@dataclass
class CheckoutSession:
    """Estado de un checkout en curso. Se descarta entero al cancelar."""
    id: str
    items: List[OrderItem]
    subtotal: Decimal
    customer: Optional[Customer]
    step: str
    payment_method: Optional[str] = None
    discount: int = 0
    total: Optional[Decimal] = None
    reference: Optional[str] = None
    redirect_url: Optional[str] = None
    bank_details: Dict[str, str] = field(default_factory=dict)
    order: Optional[Order] = None
    created_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'step': self.step,
            'payment_method': self.payment_method,
            'subtotal': float(self.subtotal),
            'discount': self.discount,
            'total': float(self.total) if self.total is not None else None,
            'reference': self.reference,
            'redirect_url': self.redirect_url,
            'bank_details': self.bank_details,
            'order_id': self.order.id if self.order else None,
        }


@dataclass(frozen=True)
class PendingPayment:
    """Pago con Mercado Pago iniciado y todavía no confirmado por la vuelta del proveedor."""
    reference: str
    session_id: str
    draft: OrderDraft
    created_at: float = 0.0


class CheckoutOrchestrator:
    """
    Convierte un carrito y un medio de pago en exactamente un pedido.

    Transferencia y Mayorista crean el pedido al confirmar. Mercado Pago sólo
    pide la preferencia y redirige; el pedido se crea cuando la compradora
    vuelve con status=success, y cada referencia emitida se consume una vez.

    Las sesiones terminadas se descartan; las abandonadas y las referencias
    de pago sin vuelta vencen por antigüedad (`session_ttl`, `pending_ttl`).
    """

    def __init__(self, order_store: OrderStore, settings_store: SettingsStore,
                 payment_gateway: PaymentPreferenceGateway, return_url: str,
                 processing_delay: float = 0.0, sleep: Callable[[float], None] = time.sleep,
                 session_ttl: float = 3600.0, pending_ttl: float = 86400.0,
                 clock: Callable[[], float] = time.monotonic):
        self.order_store = order_store
        self.settings_store = settings_store
        self.payment_gateway = payment_gateway
        self.return_url = return_url
        self.processing_delay = processing_delay
        self._sleep = sleep
        self.session_ttl = session_ttl
        self.pending_ttl = pending_ttl
        self._clock = clock
        self._sessions: Dict[str, CheckoutSession] = {}
        self._pending: Dict[str, PendingPayment] = {}
        self._in_flight = set()
        self._lock = threading.Lock()

    # --- Sesiones ---

    def start(self, cart: Cart, customer: Optional[Customer] = None) -> CheckoutSession:
        if self.settings_store.get().is_vacation_mode:
            raise VacationModeError()
        if cart.is_empty():
            raise ValidationError("El carrito está vacío.")

        items = cart.to_order_items()
        authenticated = customer is not None and customer.is_authenticated
        session = CheckoutSession(
            id=uuid.uuid4().hex,
            items=items,
            subtotal=cart_subtotal(cart.lines),
            customer=customer if authenticated else None,
            step=STEP_SELECT if authenticated else STEP_AUTH,
            created_at=self._clock(),
        )
        self.sweep_expired()
        with self._lock:
            self._sessions[session.id] = session
        return session

    def sweep_expired(self) -> None:
        """Descarta sesiones abandonadas y referencias de pago que nunca volvieron."""
        now = self._clock()
        with self._lock:
            expired_sessions = [
                sid for sid, s in self._sessions.items()
                if now - s.created_at > self.session_ttl and sid not in self._in_flight
            ]
            for sid in expired_sessions:
                del self._sessions[sid]
            expired_refs = [ref for ref, p in self._pending.items() if now - p.created_at > self.pending_ttl]
            for ref in expired_refs:
                del self._pending[ref]
        if expired_sessions or expired_refs:
            logger.info(f"Vencieron {len(expired_sessions)} sesiones y {len(expired_refs)} pagos pendientes.")

    def _finish(self, session: CheckoutSession, order: Order) -> None:
        session.order = order
        session.step = STEP_SUCCESS
        with self._lock:
            self._sessions.pop(session.id, None)

    def get_session(self, session_id: str) -> CheckoutSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound(f"No existe la sesión de pago {session_id}.")
        return session

    def continue_as_guest(self, session: CheckoutSession) -> CheckoutSession:
        if session.step != STEP_AUTH:
            raise ValidationError("La sesión ya eligió cómo continuar.")
        session.step = STEP_SELECT
        return session

    def authenticate(self, session: CheckoutSession, customer: Customer) -> CheckoutSession:
        """La compradora inició sesión desde el checkout."""
        if not customer.is_authenticated:
            raise AuthenticationRequired("El cliente no inició sesión.")
        session.customer = customer
        if session.step == STEP_AUTH:
            session.step = STEP_SELECT
        return session

    def is_submitting(self, session: CheckoutSession) -> bool:
        return session.id in self._in_flight

    def cancel(self, session: CheckoutSession) -> None:
        """Cerrar el modal: se olvida la sesión, sin pedido ni descuento registrado."""
        if self.is_submitting(session):
            raise CheckoutInProgress("No se puede cancelar mientras se procesa el pago.")
        with self._lock:
            self._sessions.pop(session.id, None)

    @contextmanager
    def _submitting(self, session: CheckoutSession):
        with self._lock:
            if session.id in self._in_flight:
                raise CheckoutInProgress("Ya estamos procesando este pago.")
            self._in_flight.add(session.id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(session.id)

    # --- Medio de pago ---

    def select_method(self, session: CheckoutSession, method: str) -> CheckoutSession:
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Medio de pago desconocido: {method}")
        if session.order is not None:
            raise ValidationError("El pedido ya fue registrado.")

        with self._submitting(session):
            if method == PAYMENT_WHOLESALE and not (session.customer and session.customer.is_authenticated):
                session.step = STEP_AUTH
                raise AuthenticationRequired(
                    'La opción "Solo Mayoristas" es exclusiva para clientes registrados. '
                    'Por favor, inicia sesión o crea una cuenta.'
                )

            settings = self.settings_store.get()
            session.payment_method = method
            session.discount = discount_for(method, settings)
            session.total = apply_discount(session.subtotal, method, settings)
            session.redirect_url = None
            session.bank_details = {}

            if method == PAYMENT_BANK_TRANSFER:
                session.bank_details = settings.bank_details()
                session.step = STEP_BANK_DETAILS
            elif method == PAYMENT_WHOLESALE:
                session.step = STEP_PROCESSING
            else:
                self._request_preference(session)
        return session

    def _request_preference(self, session: CheckoutSession) -> None:
        reference = self._new_reference()
        discounted_items = [
            OrderItem(product_name=i.product_name, quantity=i.quantity,
                      price=apply_percentage(i.price, session.discount))
            for i in session.items
        ]
        session.step = STEP_EXTERNAL_PAYMENT
        try:
            redirect_url = self.payment_gateway.create_preference(reference, discounted_items, self.return_url)
        except Exception:
            # Sin preferencia no hay pago posible: se vuelve a elegir medio de pago.
            session.step = STEP_SELECT
            session.payment_method = None
            raise

        session.reference = reference
        session.redirect_url = redirect_url
        with self._lock:
            self._pending[reference] = PendingPayment(
                reference=reference,
                session_id=session.id,
                draft=self._draft(session),
                created_at=self._clock(),
            )
        logger.info(f"Preferencia de pago creada para {reference}.")

    def _new_reference(self) -> str:
        for _ in range(10):
            reference = self.order_store.new_order_id()
            if reference not in self._pending:
                return reference
        raise ExternalServiceFailure("No se pudo generar una referencia de pago.")

    def _draft(self, session: CheckoutSession) -> OrderDraft:
        return OrderDraft(
            customer=CustomerSnapshot.of(session.customer),
            items=list(session.items),
            total=session.total,
        )

    # --- Confirmación ---

    def confirm(self, session: CheckoutSession) -> Order:
        """Confirmación explícita de Transferencia o Mayorista."""
        if session.order is not None:
            raise ValidationError("El pedido ya fue registrado.")
        if session.step not in (STEP_BANK_DETAILS, STEP_PROCESSING):
            raise ValidationError("Elegí un medio de pago antes de confirmar.")

        with self._submitting(session):
            if session.payment_method == PAYMENT_WHOLESALE and self.processing_delay > 0:
                self._sleep(self.processing_delay)
            order = self.order_store.create(self._draft(session))
            self._finish(session, order)
        return order

    def complete_external_payment(self, params: Dict[str, str]) -> Optional[Order]:
        """
        Vuelta desde Mercado Pago. Sólo status=success crea el pedido, y sólo la
        primera vez: una recarga con los mismos parámetros devuelve el pedido
        ya creado.
        """
        status = params.get('status')
        reference = params.get('external_reference') or params.get('orderId')
        if status != RETURN_STATUS_SUCCESS:
            logger.info(f"Pago {reference} volvió con estado '{status}'; no se crea pedido.")
            return None
        if not reference:
            raise ValidationError("La vuelta del pago no trae referencia de pedido.")

        with self._lock:
            pending = self._pending.pop(reference, None)

        if pending is None:
            try:
                return self.order_store.find_by_id(reference)
            except NotFound:
                raise ValidationError(f"La referencia de pago {reference} no corresponde a ningún checkout.")

        try:
            order = self.order_store.create(pending.draft, order_id=pending.reference)
        except Exception:
            with self._lock:
                self._pending[pending.reference] = pending
            raise

        session = self._sessions.get(pending.session_id)
        if session is not None:
            self._finish(session, order)
        return order
