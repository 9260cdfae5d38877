import os


class Config:
    """Clase base de configuración, con variables de entorno para DB y servicios externos."""
    # Configuración de la Base de Datos (PostgreSQL)
    DB_HOST = os.environ.get('DB_HOST', 'localhost')
    DB_PORT = os.environ.get('DB_PORT', '5432')
    DB_NAME = os.environ.get('DB_NAME', 'tienda_db')
    DB_USER = os.environ.get('DB_USER', 'postgres')
    DB_PASSWORD = os.environ.get('DB_PASSWORD', 'postgres')
    # Parámetros para la inicialización de la BD
    RUN_DB_INIT_ON_STARTUP = os.environ.get('RUN_DB_INIT_ON_STARTUP', 'False').lower() == 'true'

    # Servidor que crea las preferencias de Mercado Pago
    PAYMENTS_SERVICE_URL = os.environ.get('PAYMENTS_SERVICE_URL', 'http://localhost:3001')
    PAYMENTS_SERVICE_TIMEOUT = int(os.environ.get('PAYMENTS_SERVICE_TIMEOUT', '10'))
    # URL pública de la tienda; Mercado Pago vuelve acá con ?status=...
    STORE_ROOT_URL = os.environ.get('STORE_ROOT_URL', 'http://localhost:5173')

    # Demora simulada al registrar un pedido mayorista (segundos)
    WHOLESALE_PROCESSING_DELAY = float(os.environ.get('WHOLESALE_PROCESSING_DELAY', '5'))

    # Sesiones de checkout abandonadas y pagos de Mercado Pago sin vuelta (segundos)
    CHECKOUT_SESSION_TTL = float(os.environ.get('CHECKOUT_SESSION_TTL', '3600'))
    PENDING_PAYMENT_TTL = float(os.environ.get('PENDING_PAYMENT_TTL', '86400'))

    # Tokens de sesión (clientes y panel de administración)
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-only-secret-key-change-me-in-production')
    TOKEN_TTL_SECONDS = int(os.environ.get('TOKEN_TTL_SECONDS', '86400'))
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'doslidias')
    # Hash de werkzeug; si falta, se acepta ADMIN_PASSWORD en claro y se hashea al arrancar.
    ADMIN_PASSWORD_HASH = os.environ.get('ADMIN_PASSWORD_HASH', '')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', '')

    # Pool de conexiones
    DB_POOL_MIN_CONN = int(os.environ.get('DB_POOL_MIN_CONN', '1'))
    DB_POOL_MAX_CONN = int(os.environ.get('DB_POOL_MAX_CONN', '10'))
