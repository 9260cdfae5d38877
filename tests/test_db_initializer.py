import pytest
import psycopg2
from unittest.mock import MagicMock, patch, mock_open

from tienda.infrastructure.persistence.db_initializer import initialize_database, _read_sql_file

MODULE = 'tienda.infrastructure.persistence.db_initializer'


@pytest.fixture
def mock_db_connection():
    """Mockea la conexión y el cursor de psycopg2."""
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = MagicMock()
    return mock_conn


@pytest.fixture(autouse=True)
def mock_db_connector(mock_db_connection):
    with patch(f'{MODULE}.get_connection', return_value=mock_db_connection) as get_conn_mock, \
            patch(f'{MODULE}.release_connection') as release_conn_mock:
        yield get_conn_mock, release_conn_mock


@pytest.fixture
def mock_config():
    with patch(f'{MODULE}.Config') as MockConfig:
        MockConfig.RUN_DB_INIT_ON_STARTUP = True
        yield MockConfig


def test_read_sql_file_success():
    with patch('builtins.open', mock_open(read_data="CREATE SCHEMA store;")):
        assert _read_sql_file("dummy.sql") == "CREATE SCHEMA store;"


def test_read_sql_file_not_found():
    with patch('builtins.open', side_effect=FileNotFoundError):
        assert _read_sql_file("missing.sql") == ""


def test_initialization_skipped(mock_config, mock_db_connector):
    mock_config.RUN_DB_INIT_ON_STARTUP = False
    assert initialize_database() is False
    mock_db_connector[0].assert_not_called()


@patch(f'{MODULE}._read_sql_file', side_effect=["", "INSERT ..."])
def test_initialization_schema_missing(mock_read, mock_config, mock_db_connection, mock_db_connector):
    assert initialize_database() is False

    mock_db_connection.cursor.return_value.execute.assert_not_called()
    mock_db_connection.commit.assert_not_called()
    assert mock_read.call_count == 1
    mock_db_connector[1].assert_called_once_with(mock_db_connection)


@patch(f'{MODULE}._read_sql_file', side_effect=["CREATE ...", "INSERT ..."])
def test_initialization_success(mock_read, mock_config, mock_db_connection, mock_db_connector):
    assert initialize_database() is True

    cursor = mock_db_connection.cursor.return_value
    assert [c[0][0] for c in cursor.execute.call_args_list] == ["CREATE ...", "INSERT ..."]
    assert mock_db_connection.commit.call_count == 2
    mock_db_connector[1].assert_called_once_with(mock_db_connection)


@patch(f'{MODULE}._read_sql_file', side_effect=["CREATE ...", "INSERT ..."])
def test_initialization_seed_failure_is_tolerated(mock_read, mock_config, mock_db_connection):
    cursor = mock_db_connection.cursor.return_value
    cursor.execute.side_effect = [None, psycopg2.ProgrammingError("duplicado")]

    assert initialize_database() is True

    mock_db_connection.rollback.assert_called_once()
    assert mock_db_connection.commit.call_count == 1


def test_bundled_sql_files_exist():
    from tienda.infrastructure.persistence.db_initializer import SCHEMA_FILE, INSERT_DATA_FILE
    assert "store.orders" in _read_sql_file(SCHEMA_FILE)
    assert "store.settings" in _read_sql_file(INSERT_DATA_FILE)


@patch(f'{MODULE}._read_sql_file', side_effect=["CREATE ...", "INSERT ..."])
def test_initialization_schema_failure(mock_read, mock_config, mock_db_connection, mock_db_connector):
    cursor = mock_db_connection.cursor.return_value
    cursor.execute.side_effect = psycopg2.ProgrammingError("sintaxis")

    assert initialize_database() is False

    assert cursor.execute.call_count == 1
    mock_db_connection.rollback.assert_called_once()
    mock_db_connector[1].assert_called_once_with(mock_db_connection)


def test_initialization_without_pool(mock_config, mock_db_connector):
    mock_db_connector[0].side_effect = ConnectionError("El pool de la base de datos no está inicializado.")
    assert initialize_database() is False
    mock_db_connector[1].assert_not_called()


def test_bundled_schema_has_customer_accounts():
    from tienda.infrastructure.persistence.db_initializer import SCHEMA_FILE
    schema = _read_sql_file(SCHEMA_FILE)
    assert "store.customers" in schema
    assert "password_hash" in schema
