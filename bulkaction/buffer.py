# bulkaction/buffer.py
"""
Transient tabular buffer handed to BulkCopy.
"""

from typing import Any, Iterable, Iterator, List, Sequence, Tuple

from .mapping import EntityMap
from .utils import batch_iterable


class RowBuffer:
    """
    Ordered column names plus one tuple per row.

    Lives for a single bulk insert; nothing is cached on it.

    Example
    -------
    ::

        buffer = RowBuffer.from_entities(EntityMap(Order), orders)
        buffer.columns        # ('Id', 'Total')
        len(buffer)           # 3
        for batch in buffer.batches(1000):
            cursor.executemany(sql, batch)
    """

    def __init__(self, columns: Sequence[str], name: str = None):
        if not columns:
            raise ValueError("RowBuffer needs at least one column")
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate column names: {list(columns)}")
        self.name = name
        self.columns: Tuple[str, ...] = tuple(columns)
        self.rows: List[tuple] = []

    @classmethod
    def from_entities(cls, entity_map: EntityMap, entities: Iterable[Any]) -> 'RowBuffer':
        """Copy each entity's column values into a new buffer."""
        buffer = cls(entity_map.column_names, name=entity_map.table_name)
        for entity in entities:
            buffer.rows.append(entity_map.get_values(entity))
        return buffer

    def add_row(self, values: Sequence[Any]) -> None:
        if len(values) != len(self.columns):
            raise ValueError(f"Row has {len(values)} values, buffer has {len(self.columns)} columns")
        self.rows.append(tuple(values))

    def column_index(self, column: str) -> int:
        try:
            return self.columns.index(column)
        except ValueError:
            raise KeyError(f"Column '{column}' not in buffer {self.name or ''}".rstrip())

    def project(self, columns: Sequence[str]) -> Iterator[tuple]:
        """Rows with only the given columns, in the given order."""
        indexes = [self.column_index(col) for col in columns]
        if indexes == list(range(len(self.columns))):
            yield from self.rows
            return
        for row in self.rows:
            yield tuple(row[i] for i in indexes)

    def batches(self, batch_size: int, columns: Sequence[str] = None) -> Iterator[List[tuple]]:
        rows = self.project(columns) if columns else iter(self.rows)
        return iter(batch_iterable(rows, batch_size))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[tuple]:
        return iter(self.rows)

    def __repr__(self) -> str:
        return f"RowBuffer({self.name!r}, columns={list(self.columns)}, rows={len(self.rows)})"
