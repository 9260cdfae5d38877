# tienda/infrastructure/persistence/db_connector.py
import logging
import psycopg2
from psycopg2 import pool
from tienda.config import Config

logger = logging.getLogger(__name__)

db_pool = None


def init_db_pool():
    """
    Inicializa el pool de conexiones de PostgreSQL con los tamaños de Config.
    Llamarla de nuevo con el pool abierto no hace nada.
    """
    global db_pool
    if db_pool is not None:
        return
    try:
        db_pool = pool.ThreadedConnectionPool(
            minconn=Config.DB_POOL_MIN_CONN,
            maxconn=Config.DB_POOL_MAX_CONN,
            host=Config.DB_HOST,
            port=Config.DB_PORT,
            database=Config.DB_NAME,
            user=Config.DB_USER,
            password=Config.DB_PASSWORD
        )
        logger.info(f"Pool de conexiones listo ({Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}, "
                    f"máx. {Config.DB_POOL_MAX_CONN}).")
    except psycopg2.Error as e:
        logger.error(f"No se pudo conectar a la base de datos. {e}")
        raise ConnectionError("Fallo en la conexión inicial a la base de datos.")


def get_connection():
    """
    Obtiene una conexión del pool. Un pool sin inicializar o agotado se
    informa como ConnectionError, que los repositorios traducen a StorageFailure.
    """
    if db_pool is None:
        raise ConnectionError("El pool de la base de datos no está inicializado.")
    try:
        return db_pool.getconn()
    except pool.PoolError as e:
        logger.error(f"Pool de conexiones agotado: {e}")
        raise ConnectionError("No hay conexiones libres a la base de datos.")


def release_connection(conn):
    """Devuelve una conexión al pool."""
    if db_pool:
        db_pool.putconn(conn)


def close_db_pool():
    """Cierra todas las conexiones; se registra con atexit al crear la app."""
    global db_pool
    if db_pool is not None:
        db_pool.closeall()
        db_pool = None
        logger.info("Pool de conexiones cerrado.")
