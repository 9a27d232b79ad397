# bulkaction/session.py
"""
Sessions describe where entities go: how to open a connection and which
table each entity type is written to.

A session never holds an open connection. Every bulk insert opens its own
connection through ``Session.connect()`` and closes it when done.

Example
-------
::

    from bulkaction import Session

    session = Session('postgres', host='localhost', database='sales', user='loader',
                      password='...', tables={Order: 'sales.orders'})
    session.table(Order).bulk_insert(orders)

    # or from bulkaction.yml
    session = Session.from_config('warehouse')
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

from .bulk import bulk_insert
from .config import get_config_manager
from .database import (Database, describe_connection, get_db_type_for_driver, get_params_for_database,
                       get_supported_db_types)
from .defaults import settings
from .mapping import EntityMap
from .utils import type_path

logger = logging.getLogger(__name__)

TableKey = Union[type, str]


class Session:
    """
    Connection description plus explicit entity type to table name mapping.

    Args:
        db_type: 'postgres', 'oracle', 'sqlserver', 'mysql' or 'sqlite'. Inferred from
            driver when omitted.
        driver: Specific driver module (psycopg, psycopg2, oracledb, pyodbc, ...)
        tables: ``{EntityClass or 'module.Class' or 'Class': 'schema.table'}``
        **connection_params: host, port, database, user, password, ...
    """

    def __init__(self, db_type: Optional[str] = None, driver: Optional[str] = None,
                 tables: Optional[Dict[TableKey, str]] = None, **connection_params):
        if db_type is None and driver:
            db_type = get_db_type_for_driver(driver)
        self.db_type = db_type or settings.get('default_db_type', 'postgres')
        if self.db_type not in get_supported_db_types():
            raise ValueError(f"Unsupported database type: {self.db_type}. "
                             f"Supported types: {sorted(get_supported_db_types())}")
        self.driver = driver
        self.connection_params = connection_params
        self.tables: Dict[TableKey, str] = dict(tables or {})
        self._entity_maps: Dict[type, EntityMap] = {}

    @classmethod
    def from_config(cls, name: str, config_file: Optional[str] = None) -> 'Session':
        """
        Build a session from a named connection and the ``tables`` section of the config file.
        """
        config_mgr = get_config_manager(config_file)
        config = config_mgr.get_connection_config(name)

        db_type = config.pop('type', None) or config.pop('database_type', None)
        driver = config.pop('driver', None)
        if db_type is None and driver:
            db_type = get_db_type_for_driver(driver)
        if db_type is None:
            db_type = settings.get('default_db_type', 'postgres')

        allowed_params = get_params_for_database(db_type)
        ignored = set(config) - allowed_params
        if ignored:
            logger.warning(f"Connection '{name}': ignoring unknown parameters {sorted(ignored)}")
        params = {key: val for key, val in config.items() if key in allowed_params}

        session = cls(db_type, driver=driver, tables=config_mgr.get_table_mappings(), **params)
        logger.debug(f"Session '{name}' created: {session.connection_string}")
        return session

    @property
    def connection_string(self) -> str:
        """Connection description with the password masked."""
        return describe_connection(self.db_type, self.driver, **self.connection_params)

    def connect(self) -> Database:
        """Open a new connection. The caller owns it and must close it."""
        return Database.create(self.db_type, driver=self.driver, **self.connection_params)

    def register(self, entity: Union[type, EntityMap], table_name: Optional[str] = None,
                 columns: Any = None) -> EntityMap:
        """
        Register an explicit mapping for an entity type.

        Example:
            session.register(Order, 'sales.orders', columns=['Id', 'Total'])
            session.register(EntityMap(Order, 'sales.orders'))
        """
        if isinstance(entity, EntityMap):
            if table_name is not None or columns is not None:
                raise ValueError("Pass either an EntityMap or table_name/columns, not both")
            entity_map = entity
        else:
            entity_map = EntityMap(entity, table_name or self._lookup_table_name(entity), columns)
        self._entity_maps[entity_map.entity_type] = entity_map
        return entity_map

    def _lookup_table_name(self, entity_type: type) -> Optional[str]:
        for key in (entity_type, type_path(entity_type), entity_type.__qualname__, entity_type.__name__):
            if key in self.tables:
                return self.tables[key]
        return None

    def get_table_name(self, entity_type: type) -> str:
        """Destination table for entity_type; the class name when nothing is configured."""
        if entity_type in self._entity_maps:
            return self._entity_maps[entity_type].table_name
        return self._lookup_table_name(entity_type) or entity_type.__name__

    def get_entity_map(self, entity_type: type) -> EntityMap:
        """Registered mapping, or a fresh one built by reflection."""
        if entity_type in self._entity_maps:
            return self._entity_maps[entity_type]
        return EntityMap(entity_type, self.get_table_name(entity_type))

    def table(self, entity_type: type) -> 'TableHandle':
        return TableHandle(self, entity_type)

    def __repr__(self) -> str:
        return f"Session({self.connection_string})"


class TableHandle:
    """A session-bound reference to the table one entity type is stored in."""

    def __init__(self, session: Session, entity_type: type):
        if not isinstance(entity_type, type):
            raise TypeError(f"Expected an entity class, got {entity_type!r}")
        self.session = session
        self.entity_type = entity_type

    @property
    def table_name(self) -> str:
        return self.session.get_table_name(self.entity_type)

    @property
    def entity_map(self) -> EntityMap:
        return self.session.get_entity_map(self.entity_type)

    @property
    def columns(self) -> list:
        return self.entity_map.column_names

    def bulk_insert(self, entities: Iterable[Any], batch_size: Optional[int] = None) -> int:
        """Bulk insert entities into this table. See :func:`bulkaction.bulk.bulk_insert`."""
        return bulk_insert(self, entities, batch_size=batch_size)

    def __repr__(self) -> str:
        return f"TableHandle({self.entity_type.__name__} -> {self.table_name})"
