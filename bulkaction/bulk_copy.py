# bulkaction/bulk_copy.py
"""
Native bulk write of a RowBuffer into a database table.

Picks the fastest path the connected driver offers:

- PostgreSQL + psycopg: ``COPY ... FROM STDIN`` through ``cursor.copy()``
- PostgreSQL + psycopg2: ``COPY ... FROM STDIN (FORMAT csv)`` through ``copy_expert``
- Oracle + python-oracledb 3.4+: ``connection.direct_path_load()``
- SQL Server + pyodbc: ``executemany`` with ``fast_executemany``
- anything else: batched ``executemany`` INSERT
"""

import io
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .buffer import RowBuffer
from .defaults import settings
from .utils import quote_identifier, validate_identifier

logger = logging.getLogger(__name__)


def placeholders(paramstyle: str, count: int) -> str:
    """Positional bind placeholders for a driver's paramstyle."""
    if paramstyle == 'qmark':
        marks = ['?'] * count
    elif paramstyle in ('format', 'pyformat'):
        marks = ['%s'] * count
    elif paramstyle in ('numeric', 'named'):
        # named drivers (oracledb) also accept :1, :2 for positional binds
        marks = [f':{i}' for i in range(1, count + 1)]
    else:
        raise ValueError(f"Unsupported paramstyle: {paramstyle}")
    return ', '.join(marks)


def csv_field(value, null: str = '\\N') -> str:
    """
    One field of a ``COPY ... (FORMAT csv)`` stream. NULL is the only unquoted
    field, so a string equal to the NULL marker still loads as that string.
    Binary values are sent in bytea hex format.
    """
    if value is None:
        return null
    if isinstance(value, (bytes, bytearray, memoryview)):
        text = '\\x' + bytes(value).hex()
    else:
        text = str(value)
    return '"' + text.replace('"', '""') + '"'


class BulkCopy:
    """
    Stream a RowBuffer into one destination table.

    Column mappings are ``(source, destination)`` pairs; by default every
    buffer column maps to the identically named destination column.

    Example
    -------
    ::

        with session.connect() as db:
            copier = BulkCopy(db, 'sales.orders', batch_size=5000)
            copier.write_to_server(buffer)
    """

    def __init__(self, db, table_name: str,
                 column_mappings: Optional[Iterable[Tuple[str, str]]] = None,
                 batch_size: Optional[int] = None):
        self.db = db
        self.table_name = validate_identifier(table_name)
        self.column_mappings: List[Tuple[str, str]] = list(column_mappings or [])
        self.batch_size = batch_size or settings.get('default_batch_size', 1000)
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        self.rows_copied = 0

    def add_mapping(self, source: str, destination: Optional[str] = None) -> None:
        self.column_mappings.append((source, destination or source))

    def _resolve_mappings(self, buffer: RowBuffer) -> Tuple[List[str], List[str]]:
        mappings = self.column_mappings or [(col, col) for col in buffer.columns]
        sources, destinations = [], []
        for source, destination in mappings:
            if source not in buffer.columns:
                raise ValueError(f"Mapped source column '{source}' is not in the buffer: {list(buffer.columns)}")
            sources.append(source)
            destinations.append(validate_identifier(destination))
        return sources, destinations

    def write_to_server(self, buffer: RowBuffer) -> int:
        """
        Write every buffer row to the destination table inside one transaction.

        Returns:
            Number of rows written
        """
        sources, destinations = self._resolve_mappings(buffer)
        if not len(buffer):
            logger.info(f"Nothing to copy into {self.table_name}")
            return 0

        db_type = self.db.server_type
        driver = self.db.driver_name
        logger.debug(f"Copying {len(buffer):,} rows into {self.table_name} via {db_type}/{driver}")

        with self.db.transaction():
            if db_type == 'postgres' and driver == 'psycopg':
                self._copy_psycopg(buffer, sources, destinations)
            elif db_type == 'postgres' and driver == 'psycopg2':
                self._copy_psycopg2(buffer, sources, destinations)
            elif db_type == 'oracle' and hasattr(self.db, 'direct_path_load'):
                self._direct_path_load(buffer, sources, destinations)
            elif db_type == 'sqlserver' and driver == 'pyodbc':
                self._executemany(buffer, sources, destinations, fast=True)
            else:
                if db_type == 'oracle':
                    logger.warning("direct_path_load requires python-oracledb 3.4+; using executemany")
                self._executemany(buffer, sources, destinations)

        self.rows_copied = len(buffer)
        logger.info(f"Copied {self.rows_copied:,} rows into {self.table_name}")
        return self.rows_copied

    def _column_list(self, destinations: Sequence[str]) -> str:
        return ', '.join(quote_identifier(col, self.db.server_type) for col in destinations)

    def insert_sql(self, destinations: Sequence[str]) -> str:
        marks = placeholders(getattr(self.db.interface, 'paramstyle', 'qmark'), len(destinations))
        return (f"INSERT INTO {quote_identifier(self.table_name, self.db.server_type)} "
                f"({self._column_list(destinations)}) VALUES ({marks})")

    def copy_sql(self, destinations: Sequence[str], csv_format: bool = False) -> str:
        table = quote_identifier(self.table_name, self.db.server_type)
        sql = f"COPY {table} ({self._column_list(destinations)}) FROM STDIN"
        if csv_format:
            null = settings.get('copy_null_string', '\\N')
            sql += f" WITH (FORMAT csv, NULL '{null}')"
        return sql

    def _copy_psycopg(self, buffer: RowBuffer, sources, destinations) -> None:
        """psycopg 3 COPY protocol; the driver adapts each value."""
        with self.db.cursor() as cursor:
            with cursor.copy(self.copy_sql(destinations)) as copy:
                for row in buffer.project(sources):
                    copy.write_row(row)

    def _copy_psycopg2(self, buffer: RowBuffer, sources, destinations) -> None:
        """psycopg2 copy_expert, one CSV chunk per batch."""
        sql = self.copy_sql(destinations, csv_format=True)
        null = settings.get('copy_null_string', '\\N')
        with self.db.cursor() as cursor:
            for batch in buffer.batches(self.batch_size, sources):
                chunk = io.StringIO()
                for row in batch:
                    chunk.write(','.join(csv_field(value, null) for value in row))
                    chunk.write('\n')
                chunk.seek(0)
                cursor.copy_expert(sql, chunk)

    def _direct_path_load(self, buffer: RowBuffer, sources, destinations) -> None:
        """
        Oracle direct path load. Bypasses the SQL engine and writes data blocks
        directly, so the table must not have active triggers or enabled foreign keys.
        """
        parts = self.table_name.split('.')
        if len(parts) != 2:
            raise ValueError("Schema is required for direct path load, use [schema].[table] format")
        schema, table_name = parts
        for batch in buffer.batches(self.batch_size, sources):
            self.db.direct_path_load(
                schema_name=schema,
                table_name=table_name,
                column_names=list(destinations),
                data=batch,
                batch_size=self.batch_size
            )

    def _executemany(self, buffer: RowBuffer, sources, destinations, fast: bool = False) -> None:
        sql = self.insert_sql(destinations)
        cursor = self.db.cursor()
        try:
            if fast:
                cursor.fast_executemany = True
            for batch in buffer.batches(self.batch_size, sources):
                cursor.executemany(sql, batch)
        finally:
            cursor.close()
