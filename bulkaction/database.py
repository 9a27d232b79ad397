# bulkaction/database.py
"""
Database connection wrapper that provides a uniform interface
to the DB-API drivers bulkaction can stream rows into.
"""

import importlib
import importlib.util
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .defaults import settings

logger = logging.getLogger(__name__)

# users can define their own drivers in the config file
_user_drivers = {}


DRIVERS = {
    # PostgreSQL Drivers
    'psycopg': {  # psycopg3
        'database_type': 'postgres',
        'priority': 11,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'options', 'sslcert', 'sslkey', 'sslrootcert'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },
    'psycopg2': {
        'database_type': 'postgres',
        'priority': 12,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'options', 'sslcert', 'sslkey', 'sslrootcert'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },

    # Oracle Drivers
    'oracledb': {
        'database_type': 'oracle',
        'priority': 11,
        'param_map': {'database': 'service_name'},
        'required_params': [{'dsn', 'user'}, {'host', 'port', 'database', 'user'}],
        'optional_params': {'password', 'mode', 'config_dir', 'wallet_location', 'wallet_password'},
        'connection_method': 'dsn',
        'default_port': 1521
    },

    # SQL Server Drivers
    'pyodbc': {
        'database_type': 'sqlserver',
        'priority': 11,
        'param_map': {'host': 'SERVER', 'database': 'DATABASE', 'user': 'UID', 'password': 'PWD'},
        'required_params': [{'host', 'database', 'user'}, {'host', 'database', 'trusted_connection'}],
        'optional_params': {'password', 'port', 'odbc_driver_name', 'encrypt', 'trustservercertificate'},
        'connection_method': 'odbc_string',
        'default_port': 1433
    },
    'pymssql': {
        'database_type': 'sqlserver',
        'priority': 12,
        'param_map': {'host': 'server'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'password', 'port', 'timeout', 'login_timeout', 'charset', 'appname'},
        'connection_method': 'kwargs',
        'default_port': 1433
    },

    # MySQL Drivers
    'mysql.connector': {
        'database_type': 'mysql',
        'priority': 11,
        'param_map': {},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'charset', 'collation', 'autocommit', 'time_zone',
                            'connection_timeout'},
        'connection_method': 'kwargs',
        'default_port': 3306
    },
    'pymysql': {
        'database_type': 'mysql',
        'priority': 12,
        'param_map': {'database': 'db', 'password': 'passwd'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'charset', 'connect_timeout', 'read_timeout',
                            'write_timeout', 'autocommit'},
        'connection_method': 'kwargs',
        'default_port': 3306
    },

    # SQLite Driver
    'sqlite3': {
        'database_type': 'sqlite',
        'priority': 1,
        'param_map': {},
        'required_params': [{'database'}],
        'optional_params': {'timeout', 'detect_types', 'isolation_level', 'check_same_thread',
                            'cached_statements', 'uri'},
        'connection_method': 'kwargs'
    }
}


def register_user_drivers(drivers_config: dict) -> None:
    """Register drivers from config file."""
    _user_drivers.update(drivers_config)


def get_all_drivers() -> dict:
    """Get combined built-in and user drivers."""
    return {**DRIVERS, **_user_drivers}


def get_drivers_for_database(db_type: str, valid_only: bool = True) -> List[str]:
    """
    Gets a list of drivers available for the specified database type, best first.

    Parameters:
        db_type (str): The type of database for which to retrieve drivers.
        valid_only (bool): Only include drivers that are currently importable (default is True).

    Returns:
        List[str]: Driver names sorted by priority. User drivers win ties.
    """
    all_drivers = get_all_drivers()
    available_drivers = []

    for driver_name, info in all_drivers.items():
        if info['database_type'] != db_type:
            continue
        if valid_only:
            try:
                found = importlib.util.find_spec(driver_name)
            except ModuleNotFoundError:
                # parent package of a dotted name (mysql.connector) is missing
                found = None
            if not found:
                continue
        available_drivers.append(driver_name)

    def sort_key(driver_name):
        priority = all_drivers[driver_name]['priority']
        if driver_name in _user_drivers:
            priority -= 0.5
        return priority

    available_drivers.sort(key=sort_key)
    return available_drivers


def get_db_type_for_driver(driver_name: str) -> Optional[str]:
    """Get database type for a driver."""
    return get_all_drivers().get(driver_name, dict()).get('database_type')


def get_params_for_database(db_type: str, driver: Optional[str] = None) -> set:
    """Get all valid connection parameters for a database type."""
    valid_params = set()
    for driver_name, driver_info in get_all_drivers().items():
        if driver_info['database_type'] != db_type:
            continue
        if driver and driver_name != driver:
            continue
        for param_set in driver_info['required_params']:
            valid_params.update(param_set)
        valid_params.update(driver_info.get('optional_params', set()))
    return valid_params


def get_supported_db_types() -> set:
    """Get all supported database types."""
    return {info['database_type'] for info in get_all_drivers().values()}


def validate_connection_params(driver_name: str, **params) -> dict:
    """
    Validate connection parameters against driver requirements.

    Args:
        driver_name: Name of the database driver
        **params: Connection parameters

    Returns:
        Dict of driver-ready parameters (renamed via param_map) with extras removed

    Raises:
        ValueError: If the driver is unknown or required parameters are missing
    """
    all_drivers = get_all_drivers()
    if driver_name not in all_drivers:
        raise ValueError(f"Unknown driver: {driver_name}")

    driver_info = all_drivers[driver_name]
    params = {key: val for key, val in params.items() if val is not None}

    if 'port' not in params and driver_info.get('default_port'):
        params['port'] = driver_info['default_port']

    if not any(set(required).issubset(params.keys()) for required in driver_info['required_params']):
        raise ValueError(f"Missing required parameters. Need one of: {driver_info['required_params']}")

    param_map = driver_info.get('param_map', {})
    all_valid_params = set()
    for req_set in driver_info['required_params']:
        all_valid_params.update(req_set)
    all_valid_params.update(driver_info.get('optional_params', set()))

    return {param_map.get(key, key): value for key, value in params.items() if key in all_valid_params}


def get_connection_string(**kwargs) -> str:
    """ Get libpq style connection string from keyword arguments."""
    return " ".join([f"{key}={value}" for key, value in kwargs.items()])


def get_odbc_connection_string(**kwargs) -> str:
    """ Get connection string for ODBC from keyword arguments."""
    odbc_driver_name = kwargs.pop('odbc_driver_name', settings.get('odbc_driver_name'))
    host = kwargs.pop('SERVER', 'localhost')
    port = kwargs.pop('port', None)
    params = {'SERVER': f"{host},{port}" if port else host}
    params.update({key.upper(): value for key, value in kwargs.items()})
    conn_str = ";".join([f"{key}={value}" for key, value in params.items()])
    if odbc_driver_name:
        return f"DRIVER={{{odbc_driver_name}}};" + conn_str
    return conn_str


class Database:
    """
    Database connection wrapper that provides uniform interface
    across different database adapters.

    Anything not defined here (``cursor()``, ``commit()``, ``direct_path_load()``...)
    is delegated to the underlying DB-API connection.
    """

    # Attributes stored locally, others delegated to _connection
    _local_attrs = ['_connection', 'server_type', 'database_name', 'interface', 'driver_name']

    def __init__(self, connection, interface, database_name: Optional[str] = None,
                 driver_name: Optional[str] = None):
        """
        Initialize Database wrapper.

        Args:
            connection: Underlying database connection object
            interface: Database adapter module (psycopg, oracledb, etc.)
            database_name: Name of the database
            driver_name: Key of the driver in DRIVERS (defaults to the module name)
        """
        self._connection = connection
        self.interface = interface
        self.database_name = database_name
        self.driver_name = driver_name or interface.__name__
        self.server_type = get_db_type_for_driver(self.driver_name) or 'unknown'

    def __getattr__(self, key: str) -> Any:
        """Delegate attribute access to underlying connection."""
        return getattr(self._connection, key)

    def __setattr__(self, key: str, value: Any) -> None:
        """Set attributes locally or delegate to connection."""
        if key in self._local_attrs:
            self.__dict__[key] = value
        else:
            setattr(self._connection, key, value)

    def __str__(self) -> str:
        if self.database_name:
            return f'Database({self.database_name}:{self.server_type})'
        return f'Database({self.server_type})'

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Example:
            with db.transaction():
                cursor = db.cursor()
                cursor.executemany("INSERT ...", rows)
                # Auto-commit on success, rollback on exception
        """
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise

    @classmethod
    def create(cls, db_type: str, driver: Optional[str] = None, **kwargs) -> 'Database':
        """
        Factory method to create database connections.

        Args:
            db_type: Database type ('postgres', 'oracle', 'sqlserver', 'mysql', 'sqlite')
            driver: Specific driver to use. Defaults to the best installed driver.
            **kwargs: Connection parameters

        Returns:
            Database instance
        """
        all_drivers = get_all_drivers()
        db_driver = None
        driver_name = None
        if driver:
            if driver not in all_drivers:
                raise ValueError(f"Unknown driver: {driver}")
            if all_drivers[driver]['database_type'] != db_type:
                raise ValueError(f"Driver '{driver}' is not compatible with database type '{db_type}'")
            try:
                db_driver = importlib.import_module(driver)
                driver_name = driver
            except ImportError:
                logger.warning(f"Driver '{driver}' not available, falling back to default")

        if db_driver is None:
            for candidate in get_drivers_for_database(db_type):
                try:
                    db_driver = importlib.import_module(candidate)
                    driver_name = candidate
                    break
                except ImportError:
                    pass

        if db_driver is None:
            raise ImportError(f"No database driver found for database type '{db_type}'")

        database_name = kwargs.get('database')
        params = validate_connection_params(driver_name, **kwargs)

        method = all_drivers[driver_name]['connection_method']
        if method == 'kwargs':
            connection = db_driver.connect(**params)
        elif method == 'connection_string':
            connection = db_driver.connect(get_connection_string(**params))
        elif method == 'dsn':
            if 'dsn' not in params:
                host = params.pop('host', 'localhost')
                port = params.pop('port', 1521)
                service_name = params.pop('service_name', None)
                params['dsn'] = db_driver.makedsn(host, port, service_name=service_name)
            connection = db_driver.connect(**params)
        elif method == 'odbc_string':
            connection = db_driver.connect(get_odbc_connection_string(**params))
        else:
            raise ValueError(f"Unknown connection method '{method}' for driver '{driver_name}'")

        logger.debug(f"Connected to {db_type} database {database_name} using {driver_name}")
        return cls(connection, db_driver, database_name, driver_name)


def describe_connection(db_type: str, driver: Optional[str] = None, **params: Dict[str, Any]) -> str:
    """
    Human readable ``key=value`` description of a connection with the password masked.

    Example:
        >>> describe_connection('postgres', host='db1', database='sales', user='etl', password='x')
        'type=postgres host=db1 database=sales user=etl password=****'
    """
    shown = {'type': db_type}
    if driver:
        shown['driver'] = driver
    for key, value in params.items():
        if value is None:
            continue
        shown[key] = '****' if 'password' in key else value
    return get_connection_string(**shown)
