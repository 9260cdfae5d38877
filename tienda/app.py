# tienda/app.py
import atexit
import logging

from flask import Flask, jsonify
from dotenv import load_dotenv  # Necesario para cargar variables de entorno
from flask_cors import CORS
from werkzeug.security import generate_password_hash

from tienda.config import Config
from tienda.application.auth import TokenService, CustomerAccounts, AdminAuth
from tienda.application.catalog_store import CatalogStore
from tienda.application.settings_store import SettingsStore
from tienda.application.order_store import OrderStore
from tienda.application.checkout import CheckoutOrchestrator
from tienda.application.use_cases import TrackOrderUseCase, SearchOrdersUseCase
from tienda.clients.payments_client import PaymentsClient
from tienda.domain.errors import StorageFailure
from tienda.infrastructure.persistence.pg_repository import (
    PgProductRepository, PgSettingsRepository, PgOrderRepository, PgCustomerRepository,
)
from tienda.infrastructure.persistence.db_connector import init_db_pool, close_db_pool
from tienda.infrastructure.persistence.db_initializer import initialize_database
from tienda.infrastructure.web.flask_routes import (
    create_store_blueprint, create_account_blueprint, create_checkout_blueprint, create_admin_blueprint,
)

logger = logging.getLogger(__name__)

# Cargar variables de entorno del archivo .env (si existe)
load_dotenv()


def create_app(payment_gateway=None):
    """Crea, configura y cablea la aplicación Flask siguiendo la Arquitectura Limpia."""

    app = Flask(__name__)
    app.config.from_object(Config)

    # --- INICIALIZACIÓN DE LA BASE DE DATOS ---
    # Si falla, la app arranca igual y las peticiones responden 503.
    try:
        init_db_pool()
        atexit.register(close_db_pool)
        initialize_database()
    except ConnectionError as e:
        logger.critical(f"Fallo al inicializar la BD. {e}")

    # --- CABLEADO DE DEPENDENCIAS (Dependency Injection - DI) ---

    # 1. Infraestructura de Persistencia (Implementación real de PostgreSQL)
    product_repository = PgProductRepository()
    settings_repository = PgSettingsRepository()
    order_repository = PgOrderRepository()
    customer_repository = PgCustomerRepository()

    # 2. Capa de Aplicación
    catalog_store = CatalogStore(product_repository)
    settings_store = SettingsStore(settings_repository)
    order_store = OrderStore(order_repository)
    try:
        settings_store.refresh()
        catalog_store.load()
    except StorageFailure as e:
        logger.error(f"No se pudo precargar catálogo/configuración: {e}")

    checkout = CheckoutOrchestrator(
        order_store=order_store,
        settings_store=settings_store,
        payment_gateway=payment_gateway or PaymentsClient(),
        return_url=Config.STORE_ROOT_URL,
        processing_delay=Config.WHOLESALE_PROCESSING_DELAY,
        session_ttl=Config.CHECKOUT_SESSION_TTL,
        pending_ttl=Config.PENDING_PAYMENT_TTL,
    )
    tokens = TokenService(Config.SECRET_KEY, Config.TOKEN_TTL_SECONDS)
    accounts = CustomerAccounts(customer_repository, tokens)
    admin_password_hash = Config.ADMIN_PASSWORD_HASH or (
        generate_password_hash(Config.ADMIN_PASSWORD) if Config.ADMIN_PASSWORD else None
    )
    if admin_password_hash is None:
        logger.warning("Sin ADMIN_PASSWORD_HASH ni ADMIN_PASSWORD: el panel de administración queda cerrado.")
    admin_auth = AdminAuth(Config.ADMIN_USERNAME, admin_password_hash, tokens)
    track_order_use_case = TrackOrderUseCase(order_store, settings_store)
    search_orders_use_case = SearchOrdersUseCase(order_store, settings_store)

    # Configurar CORS
    CORS(app, resources={
        r"/*": {
            "origins": "*",
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"]
        }
    })

    # 3. Capa de Presentación (Web)
    app.register_blueprint(create_store_blueprint(catalog_store, settings_store, track_order_use_case))
    app.register_blueprint(create_account_blueprint(accounts, order_store))
    app.register_blueprint(create_checkout_blueprint(checkout, catalog_store, settings_store, accounts))
    app.register_blueprint(
        create_admin_blueprint(catalog_store, settings_store, order_store, search_orders_use_case, admin_auth),
        url_prefix='/admin'
    )

    # --- Ruta de control ---
    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})
    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    app.run(host='0.0.0.0', port=8080, debug=False)
