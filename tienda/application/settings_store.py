import logging
from typing import Optional

from tienda.domain.interfaces import SettingsRepository
from tienda.domain.entities import Settings, DEFAULT_STATUS_COLOR
from tienda.domain.errors import ValidationError

logger = logging.getLogger(__name__)


def validate_settings(settings: Settings) -> None:
    for name in ('mercado_pago_discount', 'bank_discount'):
        value = getattr(settings, name)
        if not isinstance(value, int) or not 0 <= value <= 100:
            raise ValidationError(f"{name} debe ser un porcentaje entre 0 y 100.")
    seen = set()
    for status in settings.shipping_statuses:
        if not status.id or not status.label:
            raise ValidationError("Cada estado de envío necesita id y nombre.")
        if status.id in seen:
            raise ValidationError(f"El estado '{status.id}' está repetido.")
        seen.add(status.id)


class SettingsStore:
    """
    Configuración única de la tienda.
    `get()` lee la copia en memoria; `update()` reemplaza el registro completo
    y sólo toca la caché si el repositorio confirmó la escritura.
    """

    def __init__(self, settings_repository: SettingsRepository, initial: Optional[Settings] = None):
        self.repository = settings_repository
        self._settings = initial or Settings()

    def get(self) -> Settings:
        return self._settings

    def refresh(self) -> Settings:
        stored = self.repository.get_settings()
        if stored is None:
            logger.warning("No hay configuración guardada; se usan los valores por defecto.")
            stored = Settings()
        self._settings = stored
        return self._settings

    def update(self, new_settings: Settings) -> None:
        validate_settings(new_settings)
        self.repository.save_settings(new_settings)
        self._settings = new_settings
        logger.info("Configuración actualizada.")

    def status_label(self, status_id: str) -> str:
        found = self._settings.find_status(status_id)
        return found.label if found else status_id.replace('_', ' ')

    def status_color(self, status_id: str) -> str:
        found = self._settings.find_status(status_id)
        return found.color if found else DEFAULT_STATUS_COLOR
