# tests/test_mapping.py
import dataclasses
from dataclasses import dataclass

import pytest

from bulkaction.mapping import EntityMap, discover_columns, navigation, not_mapped
from deferred_models import Invoice, Receipt
from models import Citizen, Nomad, Officer, Order, Scroll, Soldier


class TestDiscoverColumns:
    """Test column discovery by reflection."""

    def test_order_skips_navigation(self):
        """Test Order maps Id and Total but not the Customer navigation."""
        assert discover_columns(Order) == ['Id', 'Total']

    def test_declaration_order(self):
        """Test columns come back in declaration order."""
        assert discover_columns(Soldier) == ['soldier_id', 'name', 'rank', 'firebending_skill']

    def test_excluded_attributes(self):
        """Test navigation, not mapped, ClassVar and property attributes never become columns."""
        columns = discover_columns(Soldier)
        for name in ('nation', 'squad', 'notes', 'roster_version', 'display_name'):
            assert name not in columns

    def test_inherited_columns_base_first(self):
        """Test subclass columns follow the base class columns."""
        assert discover_columns(Officer) == ['soldier_id', 'name', 'rank', 'firebending_skill', 'command']

    def test_every_column_is_an_attribute(self):
        """Test each column name is an attribute name of the entity type."""
        for entity_type in (Order, Soldier, Officer, Citizen):
            names = {f.name for f in dataclasses.fields(entity_type)}
            columns = discover_columns(entity_type)
            assert set(columns) <= names
            assert len(columns) == len(set(columns))

    def test_metadata_flag(self):
        """Test a plain field(metadata={'not_mapped': True}) is excluded."""
        assert discover_columns(Citizen) == ['citizen_id', 'full_name', 'home_city', 'boulder_size']

    def test_plain_annotated_class(self):
        """Test Annotated markers, ClassVar and private names on a non-dataclass."""
        assert discover_columns(Nomad) == ['nomad_id', 'name', 'temple']

    def test_no_mapped_columns(self):
        """Test an entity without mapped attributes raises ValueError."""
        with pytest.raises(ValueError, match="Scroll has no mapped attributes"):
            discover_columns(Scroll)

    def test_not_a_class(self):
        """Test passing an instance raises TypeError."""
        with pytest.raises(TypeError):
            discover_columns(Order(1, 2.0))

    def test_many_excluded_fields(self):
        """Test exclusion holds regardless of how many fields are excluded or where they sit."""
        @dataclass
        class Mixed:
            a: int
            nav1: object = navigation()
            b: int = 0
            skip1: int = not_mapped(default=0)
            nav2: object = navigation()
            c: int = 0
            skip2: int = not_mapped(default=0)

        assert discover_columns(Mixed) == ['a', 'b', 'c']


class TestMarkers:
    """Test the dataclass field helpers."""

    def test_navigation_defaults_to_none(self):
        order = Order(1, 5.0)
        assert order.Customer is None

    def test_navigation_keeps_metadata(self):
        f = navigation(default=None, metadata={'doc': 'buyer'})
        assert f.metadata['navigation'] is True
        assert f.metadata['doc'] == 'buyer'

    def test_not_mapped_default_factory(self):
        soldier = Soldier('FN010', 'Ozai', 'Fire Lord')
        assert soldier.notes == ''
        assert soldier.squad == []


class TestEntityMap:
    """Test explicit column mapping configuration."""

    def test_defaults(self):
        """Test EntityMap discovers columns and uses the class name as table."""
        entity_map = EntityMap(Order)
        assert entity_map.table_name == 'Order'
        assert entity_map.column_names == ['Id', 'Total']

    def test_column_list(self):
        """Test a column list maps attributes by identical name."""
        entity_map = EntityMap(Soldier, 'fire_nation_army', columns=['soldier_id', 'name'])
        values = entity_map.get_values(Soldier('FN001', 'Zuko', 'Prince', 8))
        assert values == ('FN001', 'Zuko')

    def test_column_dict_with_field_and_fn(self):
        """Test field renames and fn transforms."""
        entity_map = EntityMap(Citizen, 'earth_kingdom_census', columns={
            'citizen_id': {},
            'name': {'field': 'full_name', 'fn': str.upper},
            'city': {'field': 'home_city'},
            'earthbending_skill': {'field': 'boulder_size', 'fn': lambda x: float(x) if x else 0.0},
        })
        citizen = Citizen('EK001', 'Toph Beifong', 'Gaoling', None)
        assert entity_map.column_names == ['citizen_id', 'name', 'city', 'earthbending_skill']
        assert entity_map.get_values(citizen) == ('EK001', 'TOPH BEIFONG', 'Gaoling', 0.0)

    def test_computed_property_as_source(self):
        """Test an explicit mapping may read a property."""
        entity_map = EntityMap(Soldier, columns={'title': {'field': 'display_name'}})
        assert entity_map.get_values(Soldier('FN003', 'Zhao', 'Admiral')) == ('Admiral Zhao',)

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="has no attribute 'bending'"):
            EntityMap(Soldier, columns=['bending'])

    def test_unknown_setting(self):
        with pytest.raises(ValueError, match="unknown settings"):
            EntityMap(Soldier, columns={'name': {'field': 'name', 'nullable': False}})

    def test_fn_not_callable(self):
        with pytest.raises(ValueError, match="fn must be callable"):
            EntityMap(Soldier, columns={'name': {'fn': 'upper'}})

    def test_empty_columns(self):
        with pytest.raises(ValueError, match="No columns mapped"):
            EntityMap(Soldier, columns=[])

    def test_rejects_none_entity(self):
        with pytest.raises(TypeError, match="Cannot insert None"):
            EntityMap(Order).get_values(None)

    def test_rejects_wrong_type(self):
        with pytest.raises(TypeError, match="Expected Order, got Soldier"):
            EntityMap(Order).get_values(Soldier('FN001', 'Zuko', 'Prince'))

    def test_subclass_instances_accepted(self):
        entity_map = EntityMap(Soldier)
        officer = Officer('FN020', 'Jee', 'Lieutenant', 5, command='Wani')
        assert entity_map.get_values(officer) == ('FN020', 'Jee', 'Lieutenant', 5)

    def test_plain_class_values(self):
        nomad = Nomad('AANG001', 'Aang', 'Southern Air Temple', bison='Appa')
        assert EntityMap(Nomad).get_values(nomad) == ('AANG001', 'Aang', 'Southern Air Temple')


class TestDeferredAnnotations:
    """Test discovery when annotations reference names imported only for type checking."""

    def test_plain_class_markers_kept(self):
        """Test navigation and not mapped markers survive an unresolved forward reference."""
        assert discover_columns(Invoice) == ['Id', 'Total']

    def test_dataclass_markers_kept(self):
        assert discover_columns(Receipt) == ['receipt_id', 'amount']

    def test_values(self):
        invoice = Invoice(7, 42.0, customer=object())
        assert EntityMap(Invoice, 'invoices').get_values(invoice) == (7, 42.0)


class TestUnannotatedAttributes:
    """Test explicit mappings of plain classes that set attributes in __init__."""

    class Monk:
        def __init__(self, monk_id, temple):
            self.monk_id = monk_id
            self.temple = temple

    def test_explicit_columns(self):
        entity_map = EntityMap(self.Monk, 'air_temple_monks', columns=['monk_id', 'temple'])
        assert entity_map.get_values(self.Monk('GY001', 'Southern Air Temple')) == ('GY001', 'Southern Air Temple')

    def test_missing_attribute_reported_per_entity(self):
        entity_map = EntityMap(self.Monk, columns={'monk_id': {}, 'bison': {}})
        with pytest.raises(ValueError, match="Monk has no attribute 'bison' for column 'bison'"):
            entity_map.get_values(self.Monk('GY001', 'Southern Air Temple'))
