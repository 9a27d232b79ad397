# bulkaction/__init__.py
"""
bulkaction - bulk insert for in-memory entities

Turns a list of entity objects into one native bulk write:

- Column discovery from dataclasses / annotated classes, skipping navigation
  and not-mapped attributes, or explicit column mappings
- Entity type to table name mapping held by a Session (or bulkaction.yml)
- PostgreSQL COPY (psycopg, psycopg2), Oracle direct path load, SQL Server
  fast_executemany (pyodbc), batched executemany everywhere else
- YAML configuration with password encryption

Basic usage::

    from dataclasses import dataclass
    from typing import Optional
    import bulkaction
    from bulkaction import navigation

    @dataclass
    class Order:
        Id: int
        Total: float
        Customer: Optional['Customer'] = navigation()

    session = bulkaction.Session.from_config('warehouse')
    session.table(Order).bulk_insert(orders)
"""

__version__ = '0.1.0'

from .bulk import bulk_insert, BulkInsertError
from .buffer import RowBuffer
from .bulk_copy import BulkCopy
from .config import set_config_file
from .database import Database
from .logging_utils import setup_logging, errors_logged
from .mapping import EntityMap, Navigation, NotMapped, discover_columns, navigation, not_mapped
from .session import Session, TableHandle

__all__ = [
    'bulk_insert',
    'BulkInsertError',
    'BulkCopy',
    'Database',
    'EntityMap',
    'Navigation',
    'NotMapped',
    'RowBuffer',
    'Session',
    'TableHandle',
    'discover_columns',
    'navigation',
    'not_mapped',
    'set_config_file',
    'setup_logging',
    'errors_logged',
]
