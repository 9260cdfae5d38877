import logging
from typing import List, Optional, Dict, Tuple

import psycopg2
from psycopg2 import extras

from tienda.domain.interfaces import ProductRepository, SettingsRepository, OrderRepository, CustomerRepository
from tienda.domain.entities import Product, Variant, Settings, Order, OrderItem, Customer, to_decimal
from tienda.domain.errors import StorageFailure, ValidationError
from .db_connector import get_connection, release_connection

logger = logging.getLogger(__name__)

ORDER_COLUMNS = """
    order_id, customer_name, customer_last_name, customer_email, customer_phone,
    customer_address, customer_dni, creation_date, total_value, status, tracking_number
"""


def _row_to_order(row, items: List[OrderItem]) -> Order:
    return Order(
        id=row[0],
        customer_name=row[1],
        customer_last_name=row[2],
        customer_email=row[3],
        customer_phone=row[4],
        customer_address=row[5],
        customer_dni=row[6],
        date=row[7],
        total=to_decimal(row[8]),
        status=row[9],
        tracking_number=row[10] or "",
        items=items,
    )


class PgProductRepository(ProductRepository):
    """
    Implementación concreta del catálogo sobre PostgreSQL usando psycopg2.
    """

    def list_products(self) -> List[Product]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                SELECT product_id, name, category, description, image, price
                FROM store.products
                ORDER BY product_id;
            """)
            product_rows = cursor.fetchall()

            cursor.execute("""
                SELECT product_id, size, price
                FROM store.product_variants
                ORDER BY product_id, position;
            """)
            variants: Dict[str, List[Variant]] = {}
            for product_id, size, price in cursor.fetchall():
                variants.setdefault(str(product_id), []).append(Variant(size=size, price=to_decimal(price)))

            return [
                Product(
                    id=str(row[0]),
                    name=row[1],
                    category=row[2],
                    description=row[3],
                    image=row[4],
                    price=to_decimal(row[5]),
                    variants=variants.get(str(row[0]), []),
                )
                for row in product_rows
            ]

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al listar productos: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during product retrieval.")
        finally:
            if conn:
                release_connection(conn)

    def _insert_variants(self, cursor, product_id, variants: List[Variant]):
        extras.execute_batch(
            cursor,
            "INSERT INTO store.product_variants (product_id, position, size, price) VALUES (%s, %s, %s, %s);",
            [(product_id, position, v.size, v.price) for position, v in enumerate(variants)]
        )

    def insert_product(self, product: Product) -> Product:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                INSERT INTO store.products (name, category, description, image, price)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING product_id;
            """, (product.name, product.category, product.description, product.image, product.price))
            new_id = cursor.fetchone()[0]
            self._insert_variants(cursor, new_id, product.variants)

            conn.commit()
            product.id = str(new_id)
            return product

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al insertar producto: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during product insertion.")
        finally:
            if conn:
                release_connection(conn)

    def update_product(self, product: Product) -> None:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                UPDATE store.products
                SET name = %s, category = %s, description = %s, image = %s, price = %s
                WHERE product_id = %s;
            """, (product.name, product.category, product.description, product.image, product.price,
                  int(product.id)))
            cursor.execute("DELETE FROM store.product_variants WHERE product_id = %s;", (int(product.id),))
            self._insert_variants(cursor, int(product.id), product.variants)

            conn.commit()

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al actualizar producto {product.id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during product update.")
        finally:
            if conn:
                release_connection(conn)

    def delete_product(self, product_id: str) -> bool:
        if not str(product_id).isdigit():
            return False
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute("DELETE FROM store.products WHERE product_id = %s;", (int(product_id),))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al eliminar producto {product_id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during product deletion.")
        finally:
            if conn:
                release_connection(conn)


class PgSettingsRepository(SettingsRepository):
    """Configuración guardada como JSONB en una única fila."""

    def get_settings(self) -> Optional[Settings]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute("SELECT data FROM store.settings WHERE settings_id = 1;")
            row = cursor.fetchone()
            if row is None:
                return None
            return Settings.from_dict(row[0])

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al leer la configuración: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during settings retrieval.")
        finally:
            if conn:
                release_connection(conn)

    def save_settings(self, settings: Settings) -> None:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO store.settings (settings_id, data)
                VALUES (1, %s)
                ON CONFLICT (settings_id) DO UPDATE SET data = EXCLUDED.data;
            """, (extras.Json(settings.to_dict()),))
            conn.commit()

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al guardar la configuración: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during settings update.")
        finally:
            if conn:
                release_connection(conn)


class PgOrderRepository(OrderRepository):
    """
    Implementación concreta que se conecta a PostgreSQL
    para obtener y persistir datos de Pedidos usando psycopg2.
    """

    def insert_order(self, order: Order) -> Order:
        """
        Inserta un nuevo pedido (cabecera y líneas) en una transacción.
        """
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute(f"""
                INSERT INTO store.orders ({ORDER_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);
            """, (
                order.id,
                order.customer_name,
                order.customer_last_name,
                order.customer_email,
                order.customer_phone,
                order.customer_address,
                order.customer_dni,
                order.date,
                order.total,
                order.status,
                order.tracking_number,
            ))

            lines_data = [
                (order.id, position, item.product_name, item.quantity, item.price)
                for position, item in enumerate(order.items)
            ]
            extras.execute_batch(cursor, """
                INSERT INTO store.order_items (order_id, position, product_name, quantity, price_unit)
                VALUES (%s, %s, %s, %s, %s);
            """, lines_data)

            conn.commit()
            return order

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al insertar pedido {order.id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during order insertion.")
        finally:
            if conn:
                release_connection(conn)

    def _items_by_order(self, cursor, order_ids: List[str]) -> Dict[str, List[OrderItem]]:
        items: Dict[str, List[OrderItem]] = {order_id: [] for order_id in order_ids}
        if not order_ids:
            return items
        cursor.execute("""
            SELECT order_id, product_name, quantity, price_unit
            FROM store.order_items
            WHERE order_id = ANY(%s)
            ORDER BY order_id, position;
        """, (list(order_ids),))
        for order_id, product_name, quantity, price_unit in cursor.fetchall():
            items[order_id].append(OrderItem(product_name=product_name, quantity=quantity,
                                             price=to_decimal(price_unit)))
        return items

    def get_order_by_id(self, order_id: str) -> Optional[Order]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM store.orders
                WHERE LOWER(order_id) = LOWER(%s);
            """, (order_id,))
            row = cursor.fetchone()
            if row is None:
                return None

            items = self._items_by_order(cursor, [row[0]])
            return _row_to_order(row, items[row[0]])

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al buscar el pedido {order_id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during order retrieval.")
        finally:
            if conn:
                release_connection(conn)

    def list_orders(self) -> List[Order]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()

            cursor.execute(f"""
                SELECT {ORDER_COLUMNS}
                FROM store.orders
                ORDER BY creation_date DESC;
            """)
            rows = cursor.fetchall()

            items = self._items_by_order(cursor, [row[0] for row in rows])
            return [_row_to_order(row, items[row[0]]) for row in rows]

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al listar pedidos: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during order listing.")
        finally:
            if conn:
                release_connection(conn)

    def _update_field(self, order_id: str, column: str, value: str) -> bool:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE store.orders SET {column} = %s WHERE LOWER(order_id) = LOWER(%s);",
                (value, order_id)
            )
            updated = cursor.rowcount > 0
            conn.commit()
            return updated

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al actualizar {column} del pedido {order_id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during order update.")
        finally:
            if conn:
                release_connection(conn)

    def update_status(self, order_id: str, status: str) -> bool:
        return self._update_field(order_id, "status", status)

    def update_tracking_number(self, order_id: str, tracking_number: str) -> bool:
        return self._update_field(order_id, "tracking_number", tracking_number)

    def delete_order(self, order_id: str) -> bool:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute("DELETE FROM store.orders WHERE LOWER(order_id) = LOWER(%s);", (order_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
            return deleted

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al eliminar el pedido {order_id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during order deletion.")
        finally:
            if conn:
                release_connection(conn)


CUSTOMER_COLUMNS = "customer_id, name, last_name, email, phone, address, doc_number"


def _row_to_customer(row) -> Customer:
    return Customer(
        id=str(row[0]),
        name=row[1],
        last_name=row[2],
        email=row[3],
        phone=row[4],
        address=row[5],
        doc_number=row[6],
    )


class PgCustomerRepository(CustomerRepository):
    """Cuentas de clientes en PostgreSQL; el hash nunca sale de este módulo salvo en get_credentials."""

    def insert_customer(self, customer: Customer, password_hash: str) -> Customer:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO store.customers (name, last_name, email, phone, address, doc_number, password_hash)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING customer_id;
            """, (customer.name, customer.last_name, customer.email, customer.phone,
                  customer.address, customer.doc_number, password_hash))
            customer.id = str(cursor.fetchone()[0])
            conn.commit()
            return customer

        except psycopg2.IntegrityError:
            # Índice único sobre LOWER(email): dos registros simultáneos con el mismo email.
            conn.rollback()
            raise ValidationError("Ya existe una cuenta con ese email.")
        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al registrar el cliente {customer.email}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during customer insertion.")
        finally:
            if conn:
                release_connection(conn)

    def get_credentials(self, email: str) -> Optional[Tuple[Customer, str]]:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}, password_hash
                FROM store.customers
                WHERE LOWER(email) = LOWER(%s);
            """, (email,))
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_customer(row), row[7]

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al buscar el cliente {email}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during customer retrieval.")
        finally:
            if conn:
                release_connection(conn)

    def get_customer_by_id(self, customer_id: str) -> Optional[Customer]:
        if not str(customer_id).isdigit():
            return None
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT {CUSTOMER_COLUMNS}
                FROM store.customers
                WHERE customer_id = %s;
            """, (int(customer_id),))
            row = cursor.fetchone()
            return _row_to_customer(row) if row else None

        except (psycopg2.Error, ConnectionError) as e:
            logger.error(f"Error de base de datos al buscar el cliente {customer_id}: {e}")
            if conn:
                conn.rollback()
            raise StorageFailure("Database error during customer retrieval.")
        finally:
            if conn:
                release_connection(conn)
