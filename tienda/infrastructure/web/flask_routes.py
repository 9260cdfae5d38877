from flask import Blueprint, jsonify, request, current_app
from typing import Dict, Any, Optional

from tienda.application.auth import CustomerAccounts, AdminAuth
from tienda.application.cart import Cart
from tienda.application.catalog_store import CatalogStore
from tienda.application.checkout import CheckoutOrchestrator
from tienda.application.order_store import OrderStore
from tienda.application.settings_store import SettingsStore
from tienda.application.use_cases import TrackOrderUseCase, SearchOrdersUseCase
from tienda.domain.entities import Customer, Settings
from tienda.domain.errors import (
    StoreError, ValidationError, AuthenticationRequired, CheckoutInProgress,
    NotFound, StorageFailure, ExternalServiceFailure, AccessDenied,
)
from .auth import bearer_token, require_admin

# Orden importa: las subclases de ValidationError van antes que la base.
ERROR_STATUS = (
    (AuthenticationRequired, 401),
    (CheckoutInProgress, 409),
    (ValidationError, 400),
    (AccessDenied, 403),
    (NotFound, 404),
    (ExternalServiceFailure, 502),
    (StorageFailure, 503),
)


def _status_for(error: StoreError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _register_error_handlers(bp: Blueprint) -> None:
    @bp.errorhandler(StoreError)
    def handle_store_error(e):
        status = _status_for(e)
        if status >= 500:
            current_app.logger.error(f"{type(e).__name__}: {e}")
        return jsonify({"error": type(e).__name__, "message": str(e)}), status


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Se esperaba un cuerpo JSON.")
    return data


def _current_customer(accounts: CustomerAccounts) -> Optional[Customer]:
    """Cliente del token Bearer; None si la petición no trae token."""
    token = bearer_token()
    return accounts.resolve(token) if token else None


def _require_customer(accounts: CustomerAccounts) -> Customer:
    customer = _current_customer(accounts)
    if customer is None:
        raise AuthenticationRequired("Iniciá sesión para continuar.")
    return customer


def create_store_blueprint(catalog_store: CatalogStore, settings_store: SettingsStore,
                           track_case: TrackOrderUseCase):
    """
    Rutas públicas de la tienda: catálogo, configuración visible y seguimiento.
    """
    store_bp = Blueprint('store', __name__)
    _register_error_handlers(store_bp)

    @store_bp.route('/products', methods=['GET'])
    def list_products():
        return jsonify([p.to_dict() for p in catalog_store.list()]), 200

    @store_bp.route('/settings', methods=['GET'])
    def get_settings():
        return jsonify(settings_store.get().to_dict()), 200

    @store_bp.route('/orders/track/<order_id>', methods=['GET'])
    def track_order(order_id):
        try:
            return jsonify(track_case.execute(order_id)), 200
        except NotFound:
            return jsonify({
                "message": "No encontramos ningún pedido con ese número.",
                "order": None
            }), 404

    return store_bp


def create_account_blueprint(accounts: CustomerAccounts, order_store: OrderStore):
    """
    Cuentas de clientes: registro, inicio de sesión y "mis pedidos".
    """
    account_bp = Blueprint('account', __name__)
    _register_error_handlers(account_bp)

    @account_bp.route('/auth/register', methods=['POST'])
    def register():
        data = _json_body()
        customer, token = accounts.register(data, data.get("password"))
        return jsonify({"customer": customer.to_dict(), "token": token}), 201

    @account_bp.route('/auth/login', methods=['POST'])
    def login():
        data = _json_body()
        customer, token = accounts.login(data.get("email"), data.get("password"))
        return jsonify({"customer": customer.to_dict(), "token": token}), 200

    @account_bp.route('/auth/me', methods=['GET'])
    def me():
        return jsonify(_require_customer(accounts).to_dict()), 200

    @account_bp.route('/auth/me/orders', methods=['GET'])
    def my_orders():
        customer = _require_customer(accounts)
        orders = order_store.orders_for_customer(customer.email)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    return account_bp


def create_checkout_blueprint(checkout: CheckoutOrchestrator, catalog_store: CatalogStore,
                              settings_store: SettingsStore, accounts: CustomerAccounts):
    """
    Función de fábrica para inyectar el orquestador de pago en el Blueprint.
    """
    checkout_bp = Blueprint('checkout', __name__)
    _register_error_handlers(checkout_bp)

    def build_cart(items) -> Cart:
        if not isinstance(items, list) or not items:
            raise ValidationError("items es requerido")
        settings = settings_store.get()
        cart = Cart()
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("Cada item debe ser un objeto.")
            product = catalog_store.get(item.get("product_id"))
            variant = None
            if item.get("size"):
                variant = product.find_variant(item["size"])
            cart.add(product, settings, variant=variant, quantity=item.get("quantity", 1))
        return cart

    @checkout_bp.route('/checkout', methods=['POST'])
    def start_checkout():
        data = _json_body()
        cart = build_cart(data.get("items"))
        session = checkout.start(cart, _current_customer(accounts))
        return jsonify(session.to_dict()), 201

    @checkout_bp.route('/checkout/<session_id>/guest', methods=['POST'])
    def continue_as_guest(session_id):
        session = checkout.continue_as_guest(checkout.get_session(session_id))
        return jsonify(session.to_dict()), 200

    @checkout_bp.route('/checkout/<session_id>/login', methods=['POST'])
    def login(session_id):
        session = checkout.get_session(session_id)
        customer = _current_customer(accounts)
        token = bearer_token()
        if customer is None:
            data = _json_body()
            customer, token = accounts.login(data.get("email"), data.get("password"))
        checkout.authenticate(session, customer)
        return jsonify({"session": session.to_dict(), "token": token}), 200

    @checkout_bp.route('/checkout/<session_id>/method', methods=['POST'])
    def select_method(session_id):
        data = _json_body()
        if "payment_method" not in data:
            return jsonify({"error": "payment_method is required"}), 400
        session = checkout.select_method(checkout.get_session(session_id), data["payment_method"])
        return jsonify(session.to_dict()), 200

    @checkout_bp.route('/checkout/<session_id>/confirm', methods=['POST'])
    def confirm(session_id):
        session = checkout.get_session(session_id)
        order = checkout.confirm(session)
        return jsonify({
            "order_id": order.id,
            "session": session.to_dict(),
            "message": "Order created successfully"
        }), 201

    @checkout_bp.route('/checkout/<session_id>', methods=['DELETE'])
    def cancel(session_id):
        checkout.cancel(checkout.get_session(session_id))
        return '', 204

    @checkout_bp.route('/checkout/return', methods=['GET'])
    def payment_return():
        order = checkout.complete_external_payment(request.args.to_dict())
        if order is None:
            return jsonify({
                "status": request.args.get("status"),
                "message": "El pago no fue aprobado; no se registró ningún pedido."
            }), 200
        return jsonify({"order_id": order.id, "order": order.to_dict()}), 200

    return checkout_bp


def create_admin_blueprint(catalog_store: CatalogStore, settings_store: SettingsStore,
                           order_store: OrderStore, search_case: SearchOrdersUseCase,
                           admin_auth: AdminAuth):
    """
    Rutas del panel de administración (inventario, pedidos y configuración).
    Todas salvo /login exigen un token de administración.
    """
    admin_bp = Blueprint('admin', __name__)
    _register_error_handlers(admin_bp)
    admin_required = require_admin(admin_auth)

    @admin_bp.route('/login', methods=['POST'])
    def admin_login():
        data = _json_body()
        token = admin_auth.login(data.get("username"), data.get("password"))
        return jsonify({"token": token}), 200

    @admin_bp.route('/products', methods=['POST'])
    @admin_required
    def create_product():
        product = catalog_store.create(_json_body())
        return jsonify(product.to_dict()), 201

    @admin_bp.route('/products/<product_id>', methods=['PUT'])
    @admin_required
    def update_product(product_id):
        product = catalog_store.update(product_id, _json_body())
        return jsonify(product.to_dict()), 200

    @admin_bp.route('/products/<product_id>', methods=['DELETE'])
    @admin_required
    def delete_product(product_id):
        catalog_store.delete(product_id)
        return '', 204

    @admin_bp.route('/settings', methods=['PUT'])
    @admin_required
    def update_settings():
        try:
            new_settings = Settings.from_dict(_json_body())
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Configuración inválida: {e}")
        settings_store.update(new_settings)
        return jsonify(settings_store.get().to_dict()), 200

    @admin_bp.route('/orders', methods=['GET'])
    @admin_required
    def list_orders():
        orders = search_case.execute(request.args.get('q', ''))
        return jsonify({"orders": orders}), 200

    @admin_bp.route('/orders/<order_id>/status', methods=['PATCH'])
    @admin_required
    def update_order_status(order_id):
        data = _json_body()
        if "status" not in data:
            return jsonify({"error": "status is required"}), 400
        order_store.update_status(order_id, data["status"])
        return jsonify(order_store.find_by_id(order_id).to_dict()), 200

    @admin_bp.route('/orders/<order_id>/tracking', methods=['PATCH'])
    @admin_required
    def update_tracking(order_id):
        data = _json_body()
        order_store.update_tracking(order_id, data.get("tracking_number", ""))
        return jsonify(order_store.find_by_id(order_id).to_dict()), 200

    @admin_bp.route('/orders/<order_id>', methods=['DELETE'])
    @admin_required
    def delete_order(order_id):
        order_store.delete(order_id)
        return '', 204

    return admin_bp
