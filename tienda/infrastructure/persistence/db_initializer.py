# tienda/infrastructure/persistence/db_initializer.py
import os
import logging
from typing import List
import psycopg2
from .db_connector import get_connection, release_connection
from tienda.config import Config

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
RESOURCES_DIR = os.path.join(BASE_DIR, 'resources')
SCHEMA_FILE = os.path.join(RESOURCES_DIR, 'schema.sql')
INSERT_DATA_FILE = os.path.join(RESOURCES_DIR, 'insert_data.sql')

# Los scripts de esquema son obligatorios y se aplican en orden; los de datos
# iniciales son idempotentes y un fallo en ellos no detiene el arranque.
SCHEMA_SCRIPTS: List[str] = [SCHEMA_FILE]
SEED_SCRIPTS: List[str] = [INSERT_DATA_FILE]


def _read_sql_file(filepath: str) -> str:
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        logger.error(f"Archivo SQL no encontrado: {filepath}")
        return ""


def _run_script(cursor, conn, path: str, required: bool) -> bool:
    sql = _read_sql_file(path)
    if not sql.strip():
        if required:
            logger.error(f"El script {os.path.basename(path)} está vacío o no se encontró. Abortando inicialización.")
        return not required
    try:
        cursor.execute(sql)
    except psycopg2.Error as e:
        conn.rollback()
        if required:
            raise
        logger.warning(f"Fallo el script de datos {os.path.basename(path)} (¿datos ya cargados?): {e}")
        return True
    conn.commit()
    logger.info(f"Script aplicado: {os.path.basename(path)}")
    return True


def initialize_database() -> bool:
    """
    Crea el esquema `store` y carga catálogo y configuración inicial.
    Retorna True si el esquema quedó aplicado.
    """
    if not Config.RUN_DB_INIT_ON_STARTUP:
        logger.info("Inicialización de la base de datos omitida por configuración.")
        return False

    conn = None
    try:
        conn = get_connection()
        cursor = conn.cursor()
        for path in SCHEMA_SCRIPTS:
            if not _run_script(cursor, conn, path, required=True):
                return False
        for path in SEED_SCRIPTS:
            _run_script(cursor, conn, path, required=False)
        return True

    except psycopg2.Error as e:
        logger.error(f"Fallo durante la inicialización de la base de datos (Esquema o Conexión): {e}")
        return False
    except ConnectionError as e:
        logger.error(f"{e}")
        return False
    finally:
        if conn:
            release_connection(conn)
