"""Cuentas de clientes y acceso al panel de administración.

Las credenciales se guardan con hash (werkzeug.security) y las sesiones
viajan como JWT firmados (HS256). El cliente de una petición se resuelve
siempre desde el token, nunca desde el cuerpo.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Any, Optional, Tuple

import jwt
from werkzeug.security import generate_password_hash, check_password_hash

from tienda.domain.interfaces import CustomerRepository
from tienda.domain.entities import Customer
from tienda.domain.errors import ValidationError, AuthenticationRequired, AccessDenied

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
MIN_PASSWORD_LENGTH = 8


class TokenService:
    """Emite y verifica los tokens de sesión."""

    def __init__(self, secret: str, ttl_seconds: int = 86400,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, subject: str, role: str) -> str:
        now = self._clock()
        payload = {
            "sub": str(subject),
            "role": role,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def decode(self, token: str, role: str) -> str:
        """Retorna el `sub` del token si es válido y tiene el rol pedido."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationRequired("La sesión venció. Volvé a iniciar sesión.")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Token rechazado: {e}")
            raise AuthenticationRequired("Token inválido.")
        if payload.get("role") != role:
            raise AccessDenied("El token no tiene permiso para esta operación.")
        return payload["sub"]


class CustomerAccounts:
    """Registro e inicio de sesión de clientes."""

    def __init__(self, customer_repository: CustomerRepository, tokens: TokenService):
        self.repository = customer_repository
        self.tokens = tokens

    def register(self, data: Dict[str, Any], password: str) -> Tuple[Customer, str]:
        name = str(data.get('name') or '').strip()
        email = str(data.get('email') or '').strip().lower()
        if not name:
            raise ValidationError("El nombre es obligatorio.")
        if '@' not in email:
            raise ValidationError("El email no es válido.")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres.")
        if self.repository.get_credentials(email) is not None:
            raise ValidationError("Ya existe una cuenta con ese email.")

        customer = Customer(
            id=None,
            name=name,
            last_name=str(data.get('last_name') or ''),
            email=email,
            phone=str(data.get('phone') or ''),
            address=str(data.get('address') or ''),
            doc_number=str(data.get('doc_number') or ''),
        )
        created = self.repository.insert_customer(customer, generate_password_hash(password))
        logger.info(f"Cuenta creada para {created.email} (id {created.id}).")
        return created, self.tokens.issue(created.id, ROLE_CUSTOMER)

    def login(self, email: str, password: str) -> Tuple[Customer, str]:
        found = self.repository.get_credentials(str(email or '').strip().lower())
        if found is None or not check_password_hash(found[1], str(password or '')):
            logger.warning(f"Inicio de sesión fallido para {email}.")
            raise AuthenticationRequired("Email o contraseña incorrectos.")
        customer = found[0]
        return customer, self.tokens.issue(customer.id, ROLE_CUSTOMER)

    def resolve(self, token: str) -> Customer:
        customer = self.repository.get_customer_by_id(self.tokens.decode(token, ROLE_CUSTOMER))
        if customer is None:
            raise AuthenticationRequired("La cuenta ya no existe.")
        return customer


class AdminAuth:
    """Credencial única de la dueña de la tienda."""

    def __init__(self, username: str, password_hash: Optional[str], tokens: TokenService):
        self.username = username
        self.password_hash = password_hash
        self.tokens = tokens

    def login(self, username: str, password: str) -> str:
        if not self.password_hash:
            logger.error("Intento de acceso al panel sin contraseña de administración configurada.")
            raise AuthenticationRequired("El acceso de administración no está configurado.")
        if username != self.username or not check_password_hash(self.password_hash, str(password or '')):
            logger.warning(f"Acceso al panel rechazado para '{username}'.")
            raise AuthenticationRequired("Usuario o contraseña incorrectos.")
        return self.tokens.issue(self.username, ROLE_ADMIN)

    def verify(self, token: str) -> str:
        return self.tokens.decode(token, ROLE_ADMIN)
