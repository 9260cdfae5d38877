from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Union

# Estados con significado propio en el núcleo. El resto del vocabulario de
# estados vive en Settings.shipping_statuses y lo administra la dueña.
PENDING_STATUS = "pendiente"
CANCELLED_STATUS = "cancelado"

# Medios de pago (los mismos textos que ve la clienta en el checkout)
PAYMENT_MERCADO_PAGO = "Mercado Pago"
PAYMENT_BANK_TRANSFER = "Transferencia"
PAYMENT_WHOLESALE = "Mayorista"
PAYMENT_METHODS = (PAYMENT_MERCADO_PAGO, PAYMENT_WHOLESALE, PAYMENT_BANK_TRANSFER)

DEFAULT_STATUS_COLOR = "bg-slate-100 text-slate-400 border-slate-200"

# Datos que se guardan cuando compra alguien sin cuenta
GUEST_NAME = "Invitado"
GUEST_EMAIL = "invitado@ejemplo.com"
NO_DATA = "S/D"


def to_decimal(value: Any) -> Decimal:
    """Convierte montos (int, float, str) a Decimal sin arrastrar error binario."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Variant:
    """Variante de precio de un producto (por ejemplo, el tamaño de la maceta)."""
    size: str
    price: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> 'Variant':
        return cls(size=data['size'], price=to_decimal(data['price']))

    def to_dict(self) -> dict:
        return {'size': self.size, 'price': float(self.price)}


@dataclass
class Product:
    """
    Producto del catálogo.
    Si tiene variantes, el precio de venta siempre sale de una variante;
    `price` sólo se usa para productos sin variantes.
    """
    id: Optional[str]
    name: str
    category: str
    description: str
    image: str
    price: Decimal
    variants: List[Variant] = field(default_factory=list)

    @property
    def has_variants(self) -> bool:
        return len(self.variants) > 0

    def find_variant(self, size: str) -> Optional[Variant]:
        for variant in self.variants:
            if variant.size == size:
                return variant
        return None

    @classmethod
    def from_dict(cls, data: dict) -> 'Product':
        """Crear instancia desde diccionario."""
        return cls(
            id=data.get('id'),
            name=data['name'],
            category=data.get('category', 'Macetas'),
            description=data.get('description', ''),
            image=data.get('image', ''),
            price=to_decimal(data.get('price', 0)),
            variants=[Variant.from_dict(v) for v in data.get('variants') or []]
        )

    def to_dict(self) -> dict:
        """Convertir a diccionario."""
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'image': self.image,
            'price': float(self.price),
            'variants': [v.to_dict() for v in self.variants]
        }


@dataclass(frozen=True)
class ShippingStatus:
    """Una etapa del envío tal como la configura el panel de administración."""
    id: str
    label: str
    color: str = DEFAULT_STATUS_COLOR

    @classmethod
    def from_dict(cls, data: dict) -> 'ShippingStatus':
        return cls(id=data['id'], label=data['label'], color=data.get('color') or DEFAULT_STATUS_COLOR)

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_SHIPPING_STATUSES = [
    ShippingStatus('pendiente', 'Pendiente', 'bg-amber-100 text-amber-700 border-amber-200'),
    ShippingStatus('embalado', 'Pedido Embalado', 'bg-blue-100 text-blue-700 border-blue-200'),
    ShippingStatus('en_camino', 'En viaje (En camino)', 'bg-primary/20 text-primary border-primary/30'),
    ShippingStatus('entregado', 'Entregado', 'bg-green-100 text-green-700 border-green-200'),
    ShippingStatus('cancelado', 'Cancelado', 'bg-red-100 text-red-700 border-red-200'),
]


@dataclass
class Settings:
    """Configuración única de la tienda (un solo registro en todo el proceso)."""
    shipping_statuses: List[ShippingStatus] = field(default_factory=lambda: list(DEFAULT_SHIPPING_STATUSES))
    mercado_pago_discount: int = 0
    bank_discount: int = 10
    is_vacation_mode: bool = False
    bank_name: str = ""
    bank_holder: str = ""
    bank_cbu: str = ""
    bank_alias: str = ""
    whatsapp: str = ""
    shipping_info: str = ""

    def find_status(self, status_id: str) -> Optional[ShippingStatus]:
        for status in self.shipping_statuses:
            if status.id == status_id:
                return status
        return None

    def bank_details(self) -> Dict[str, str]:
        return {
            'bank_name': self.bank_name,
            'bank_holder': self.bank_holder,
            'bank_cbu': self.bank_cbu,
            'bank_alias': self.bank_alias,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Settings':
        """Crear instancia desde diccionario (campos ausentes toman el valor por defecto)."""
        defaults = cls()
        statuses = data.get('shipping_statuses')
        return cls(
            shipping_statuses=[ShippingStatus.from_dict(s) for s in statuses] if statuses is not None
            else defaults.shipping_statuses,
            mercado_pago_discount=int(data.get('mercado_pago_discount', defaults.mercado_pago_discount)),
            bank_discount=int(data.get('bank_discount', defaults.bank_discount)),
            is_vacation_mode=bool(data.get('is_vacation_mode', defaults.is_vacation_mode)),
            bank_name=data.get('bank_name', ''),
            bank_holder=data.get('bank_holder', ''),
            bank_cbu=data.get('bank_cbu', ''),
            bank_alias=data.get('bank_alias', ''),
            whatsapp=data.get('whatsapp', ''),
            shipping_info=data.get('shipping_info', ''),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data['shipping_statuses'] = [s.to_dict() for s in self.shipping_statuses]
        return data


@dataclass(frozen=True)
class KnownStatus:
    """Estado que figura en la lista configurada."""
    definition: ShippingStatus

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def label(self) -> str:
        return self.definition.label


@dataclass(frozen=True)
class CustomStatus:
    """Estado guardado en un pedido que ya no figura (o nunca figuró) en la configuración."""
    id: str

    @property
    def label(self) -> str:
        return self.id.replace('_', ' ')


StatusRef = Union[KnownStatus, CustomStatus]


def parse_status(status_id: str, settings: Settings) -> StatusRef:
    """Clasifica un estado libre contra el vocabulario configurado."""
    definition = settings.find_status(status_id)
    if definition is not None:
        return KnownStatus(definition)
    return CustomStatus(status_id)


@dataclass(frozen=True)
class TimelineStep:
    id: str
    label: str
    color: str
    completed: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Customer:
    """
    Cliente registrado (el que inicia sesión en la tienda).
    El id lo asigna el repositorio de clientes; nunca se toma del cuerpo de
    una petición.
    """
    id: Optional[str]
    name: str
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    doc_number: str = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.id)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CustomerSnapshot:
    """Copia de los datos de la compradora al momento del pedido."""
    name: str
    last_name: str
    email: str
    phone: str
    address: str
    dni: str

    @classmethod
    def guest(cls) -> 'CustomerSnapshot':
        return cls(GUEST_NAME, GUEST_NAME, GUEST_EMAIL, NO_DATA, NO_DATA, NO_DATA)

    @classmethod
    def of(cls, customer: Optional[Customer]) -> 'CustomerSnapshot':
        if customer is None:
            return cls.guest()
        return cls(
            name=customer.name or GUEST_NAME,
            last_name=customer.last_name,
            email=customer.email or GUEST_EMAIL,
            phone=customer.phone or NO_DATA,
            address=customer.address or NO_DATA,
            dni=customer.doc_number or NO_DATA,
        )


@dataclass(frozen=True)
class OrderItem:
    """Línea de pedido: copia de lo comprado, independiente del catálogo."""
    product_name: str
    quantity: int
    price: Decimal

    def to_dict(self) -> dict:
        return {'product_name': self.product_name, 'quantity': self.quantity, 'price': float(self.price)}


@dataclass(frozen=True)
class OrderDraft:
    """Todo lo necesario para crear un pedido salvo id, fecha y estado."""
    customer: CustomerSnapshot
    items: List[OrderItem]
    total: Decimal


@dataclass
class Order:
    """Entidad central de Pedido."""
    id: str
    customer_name: str
    customer_email: str
    date: datetime
    items: List[OrderItem]
    total: Decimal
    status: str = PENDING_STATUS
    tracking_number: str = ""
    customer_last_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    customer_dni: str = ""

    def to_dict(self) -> dict:
        """Convertir a diccionario serializable a JSON."""
        return {
            'id': self.id,
            'customer_name': self.customer_name,
            'customer_last_name': self.customer_last_name,
            'customer_email': self.customer_email,
            'customer_phone': self.customer_phone,
            'customer_address': self.customer_address,
            'customer_dni': self.customer_dni,
            'date': self.date.isoformat(),
            'items': [item.to_dict() for item in self.items],
            'total': float(self.total),
            'status': self.status,
            'tracking_number': self.tracking_number,
        }


@dataclass
class CartLine:
    """Renglón del carrito; el precio ya corresponde a la variante elegida."""
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int = 1
    size: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.product_id}:{self.size}" if self.size else str(self.product_id)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_order_item(self) -> OrderItem:
        return OrderItem(product_name=self.name, quantity=self.quantity, price=self.unit_price)
