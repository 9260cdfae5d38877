import json
from unittest.mock import patch, MagicMock

import pytest

from tienda.domain.errors import StorageFailure

MODULE = 'tienda.app'


@pytest.fixture
def wired():
    """Parchea la base de datos y los repositorios para cablear la app sin PostgreSQL."""
    with patch(f'{MODULE}.init_db_pool') as init_pool, \
            patch(f'{MODULE}.initialize_database') as init_db, \
            patch(f'{MODULE}.PgProductRepository') as products, \
            patch(f'{MODULE}.PgSettingsRepository') as settings, \
            patch(f'{MODULE}.PgOrderRepository'), \
            patch(f'{MODULE}.PgCustomerRepository'), \
            patch(f'{MODULE}.atexit'):
        products.return_value.list_products.return_value = []
        settings.return_value.get_settings.return_value = None
        yield {"init_pool": init_pool, "init_db": init_db, "products": products, "settings": settings}


def test_health(wired):
    from tienda.app import create_app
    client = create_app(payment_gateway=MagicMock()).test_client()

    response = client.get('/health')

    assert response.status_code == 200
    assert json.loads(response.data) == {'status': 'ok'}
    wired["init_db"].assert_called_once()


def test_starts_without_database(wired):
    from tienda.app import create_app
    wired["init_pool"].side_effect = ConnectionError("Fallo en la conexión inicial a la base de datos.")
    wired["products"].return_value.list_products.side_effect = StorageFailure("sin base")

    client = create_app(payment_gateway=MagicMock()).test_client()

    assert client.get('/health').status_code == 200
    assert json.loads(client.get('/products').data) == []


def test_routes_are_registered(wired):
    from tienda.app import create_app
    rules = {r.rule for r in create_app(payment_gateway=MagicMock()).url_map.iter_rules()}
    assert {'/products', '/settings', '/checkout', '/checkout/return',
            '/admin/orders', '/admin/settings', '/admin/login',
            '/auth/register', '/auth/login', '/auth/me', '/auth/me/orders'} <= rules


def test_admin_panel_requires_token(wired):
    from tienda.app import create_app
    client = create_app(payment_gateway=MagicMock()).test_client()

    assert client.get('/admin/orders').status_code == 401


@patch(f'{MODULE}.Config')
def test_admin_login_with_configured_password(mock_config, wired):
    from tienda.app import create_app
    mock_config.SECRET_KEY = "clave-de-prueba-de-al-menos-32-caracteres"
    mock_config.TOKEN_TTL_SECONDS = 3600
    mock_config.ADMIN_USERNAME = "doslidias"
    mock_config.ADMIN_PASSWORD_HASH = ""
    mock_config.ADMIN_PASSWORD = "ceramica-2024"
    mock_config.WHOLESALE_PROCESSING_DELAY = 0
    mock_config.CHECKOUT_SESSION_TTL = 3600
    mock_config.PENDING_PAYMENT_TTL = 86400
    client = create_app(payment_gateway=MagicMock()).test_client()

    login = client.post('/admin/login', json={"username": "doslidias", "password": "ceramica-2024"})
    token = json.loads(login.data)["token"]

    assert login.status_code == 200
    assert client.get('/admin/orders', headers={"Authorization": f"Bearer {token}"}).status_code == 200
