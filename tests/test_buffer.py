# tests/test_buffer.py
import pytest

from bulkaction.buffer import RowBuffer
from bulkaction.mapping import EntityMap
from models import Order, Soldier


class TestRowBuffer:
    """Test the transient row buffer."""

    def test_from_entities_order_scenario(self, orders):
        """Test three orders give columns [Id, Total] and three rows."""
        buffer = RowBuffer.from_entities(EntityMap(Order, 'orders'), orders)

        assert buffer.columns == ('Id', 'Total')
        assert buffer.name == 'orders'
        assert len(buffer) == 3
        assert list(buffer) == [(1, 12.5), (2, 3.75), (3, 99.99)]

    def test_rows_match_entity_values(self, soldiers):
        """Test each row reproduces the values read from its entity, in column order."""
        entity_map = EntityMap(Soldier)
        buffer = RowBuffer.from_entities(entity_map, soldiers)
        for soldier, row in zip(soldiers, buffer):
            assert row == (soldier.soldier_id, soldier.name, soldier.rank, soldier.firebending_skill)

    def test_from_generator(self, soldiers):
        buffer = RowBuffer.from_entities(EntityMap(Soldier), (s for s in soldiers))
        assert len(buffer) == 4

    def test_empty(self):
        buffer = RowBuffer.from_entities(EntityMap(Order), [])
        assert len(buffer) == 0
        assert buffer.columns == ('Id', 'Total')
        assert list(buffer.batches(10)) == []

    def test_none_entity(self, orders):
        with pytest.raises(TypeError):
            RowBuffer.from_entities(EntityMap(Order), orders + [None])

    def test_no_columns(self):
        with pytest.raises(ValueError, match="at least one column"):
            RowBuffer([])

    def test_duplicate_columns(self):
        with pytest.raises(ValueError, match="Duplicate column names"):
            RowBuffer(['id', 'name', 'id'])

    def test_add_row_length_checked(self):
        buffer = RowBuffer(['id', 'name'])
        buffer.add_row(['FN001', 'Zuko'])
        with pytest.raises(ValueError, match="Row has 3 values"):
            buffer.add_row(['FN002', 'Azula', 'extra'])
        assert buffer.rows == [('FN001', 'Zuko')]

    def test_project_reorders(self):
        buffer = RowBuffer(['id', 'name', 'rank'])
        buffer.add_row(('FN001', 'Zuko', 'Prince'))
        assert list(buffer.project(['rank', 'id'])) == [('Prince', 'FN001')]

    def test_project_unknown_column(self):
        buffer = RowBuffer(['id'])
        with pytest.raises(KeyError, match="Column 'name' not in buffer"):
            list(buffer.project(['name']))

    def test_batches(self, soldiers):
        buffer = RowBuffer.from_entities(EntityMap(Soldier), soldiers)
        batches = list(buffer.batches(3))
        assert [len(b) for b in batches] == [3, 1]
        assert batches[1][0][0] == 'FN004'

    def test_batches_with_columns(self, soldiers):
        buffer = RowBuffer.from_entities(EntityMap(Soldier), soldiers)
        batches = list(buffer.batches(10, ['name']))
        assert batches == [[('Zuko',), ('Azula',), ('Zhao',), ('Mai',)]]
