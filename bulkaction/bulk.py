# bulkaction/bulk.py
"""
Bulk insert of in-memory entities.

``bulk_insert`` reads the entity mapping from the handle's session, copies the
entities into a RowBuffer, opens one new connection and hands the buffer to
BulkCopy. Any failure opening the connection or writing the rows is re-raised
as BulkInsertError; the connection is always closed.
"""

import logging
from typing import Any, Iterable, Optional

from .buffer import RowBuffer
from .bulk_copy import BulkCopy

logger = logging.getLogger(__name__)


class BulkInsertError(Exception):
    """
    Raised when the rows could not be written to the destination table.

    Attributes:
        entity_type: The entity class being inserted
        table_name: Destination table name
        inner: The original exception (also available as ``__cause__``)
    """

    DEFAULT_MESSAGE = ("An error occurred while inserting the entities to the table. "
                       "See the inner exception for details")

    def __init__(self, entity_type: type, table_name: str, inner: Optional[BaseException] = None,
                 message: Optional[str] = None):
        super().__init__(message or self.DEFAULT_MESSAGE)
        self.entity_type = entity_type
        self.table_name = table_name
        self.inner = inner

    def __str__(self) -> str:
        name = getattr(self.entity_type, '__name__', self.entity_type)
        text = f"{self.args[0]} [{name} -> {self.table_name}]"
        if self.inner is not None:
            text += f": {type(self.inner).__name__}: {self.inner}"
        return text

    def __reduce__(self):
        return self.__class__, (self.entity_type, self.table_name, self.inner, self.args[0])


def bulk_insert(handle, entities: Iterable[Any], batch_size: Optional[int] = None) -> int:
    """
    Insert entities into the handle's table as a single bulk operation.

    Args:
        handle: TableHandle (``session.table(EntityClass)``)
        entities: Instances of the handle's entity type. May be empty.
        batch_size: Rows per driver call (default ``settings['default_batch_size']``)

    Returns:
        Number of rows written

    Raises:
        TypeError: an entity is None or not an instance of the entity type
        BulkInsertError: connecting or writing failed

    Example
    -------
    ::

        orders = [Order(1, 9.99), Order(2, 15.00)]
        rows = bulk_insert(session.table(Order), orders)
    """
    entity_type = handle.entity_type
    entity_map = handle.session.get_entity_map(entity_type)
    table_name = entity_map.table_name

    buffer = RowBuffer.from_entities(entity_map, entities)
    logger.debug(f"Bulk inserting {len(buffer):,} {entity_type.__name__} rows into {table_name} "
                 f"columns={list(buffer.columns)}")

    db = None
    try:
        db = handle.session.connect()
        copier = BulkCopy(db, table_name, [(col, col) for col in buffer.columns], batch_size=batch_size)
        rows = copier.write_to_server(buffer)
    except Exception as e:
        logger.error(f"Bulk insert of {entity_type.__name__} into {table_name} failed: {e}")
        raise BulkInsertError(entity_type, table_name, e) from e
    finally:
        if db is not None:
            db.close()

    logger.info(f"Bulk inserted `{table_name}` <{entity_type.__name__}: {rows:,} rows>")
    return rows
