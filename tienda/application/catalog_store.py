import logging
from decimal import InvalidOperation
from typing import List, Dict, Any, Optional

from tienda.domain.interfaces import ProductRepository
from tienda.domain.entities import Product
from tienda.domain.errors import ValidationError, NotFound

logger = logging.getLogger(__name__)


def build_product(data: Dict[str, Any], product_id: Optional[str] = None) -> Product:
    """Valida los datos del formulario de producto y arma la entidad."""
    if not isinstance(data, dict) or not str(data.get('name') or '').strip():
        raise ValidationError("El producto necesita un nombre.")
    try:
        product = Product.from_dict({**data, 'id': product_id})
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise ValidationError(f"Datos de producto inválidos: {e}")

    if product.price < 0:
        raise ValidationError("El precio no puede ser negativo.")
    sizes = set()
    for variant in product.variants:
        if not variant.size.strip():
            raise ValidationError("Cada variante necesita un tamaño.")
        if variant.price < 0:
            raise ValidationError(f"El precio de la variante '{variant.size}' no puede ser negativo.")
        if variant.size in sizes:
            raise ValidationError(f"La variante '{variant.size}' está repetida.")
        sizes.add(variant.size)
    return product


class CatalogStore:
    """
    Catálogo de productos con caché en memoria.
    `load()` llena la caché al arrancar; después se lee de forma sincrónica
    y sólo cambia cuando una mutación del repositorio tuvo éxito.
    """

    def __init__(self, product_repository: ProductRepository):
        self.repository = product_repository
        self._products: List[Product] = []

    def load(self) -> List[Product]:
        self._products = self.repository.list_products()
        logger.info(f"Catálogo cargado: {len(self._products)} productos.")
        return self.list()

    def list(self) -> List[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Product:
        for product in self._products:
            if str(product.id) == str(product_id):
                return product
        raise NotFound(f"No existe el producto {product_id}.")

    def create(self, data: Dict[str, Any]) -> Product:
        product = build_product(data)
        created = self.repository.insert_product(product)
        self._products.append(created)
        logger.info(f"Producto creado: {created.id} ({created.name})")
        return created

    def update(self, product_id: str, data: Dict[str, Any]) -> Product:
        self.get(product_id)
        product = build_product(data, product_id=product_id)
        self.repository.update_product(product)
        self._products = [product if str(p.id) == str(product_id) else p for p in self._products]
        return product

    def delete(self, product_id: str) -> None:
        if not self.repository.delete_product(product_id):
            raise NotFound(f"No existe el producto {product_id}.")
        self._products = [p for p in self._products if str(p.id) != str(product_id)]
        logger.info(f"Producto eliminado: {product_id}")
