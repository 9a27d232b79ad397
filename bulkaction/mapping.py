# bulkaction/mapping.py
"""
Map entity classes to table columns.

Columns come from one of two places:

- reflection over the entity class (``discover_columns``), which keeps every
  public annotated attribute except navigation, not-mapped and ``ClassVar``
  attributes, in declaration order;
- an explicit ``EntityMap`` column definition, in the same shape the rest of
  the toolkit uses for table columns::

      EntityMap(Order, 'sales.orders', columns={
          'Id': {'field': 'Id'},
          'Total': {'field': 'Total', 'fn': lambda x: round(x, 2)},
      })

Example
-------
::

    from dataclasses import dataclass
    from typing import Optional
    from bulkaction.mapping import navigation, not_mapped, discover_columns

    @dataclass
    class Order:
        Id: int
        Total: float
        Customer: Optional['Customer'] = navigation()
        scratch: dict = not_mapped(default_factory=dict)

    discover_columns(Order)   # ['Id', 'Total']
"""

import builtins
import dataclasses
import logging
import re
import sys
from typing import Annotated, Any, Callable, ClassVar, Dict, Iterable, List, Optional, Union
from typing import get_origin, get_type_hints

logger = logging.getLogger(__name__)

ColumnDef = Dict[str, Any]


class NotMapped:
    """Marker for attributes that are never written to the table.

    Use as ``Annotated[str, NotMapped]`` or through :func:`not_mapped`.
    """


class Navigation:
    """Marker for navigation attributes (references to related entities).

    Use as ``Annotated['Customer', Navigation]`` or through :func:`navigation`.
    """


def not_mapped(**kwargs) -> Any:
    """``dataclasses.field`` flagged as not mapped to a column."""
    return _marked_field('not_mapped', kwargs)


def navigation(**kwargs) -> Any:
    """``dataclasses.field`` flagged as a navigation attribute. Defaults to None."""
    if 'default' not in kwargs and 'default_factory' not in kwargs:
        kwargs['default'] = None
    return _marked_field('navigation', kwargs)


def _marked_field(flag: str, kwargs: dict) -> Any:
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[flag] = True
    return dataclasses.field(metadata=metadata, **kwargs)


def _has_marker(hint: Any, marker: type) -> bool:
    if isinstance(hint, str):
        # annotation that could not be evaluated
        return re.search(rf'\b{marker.__name__}\b', hint) is not None
    if get_origin(hint) is not Annotated:
        return False
    return any(m is marker or isinstance(m, marker) for m in hint.__metadata__)


def _is_classvar(hint: Any) -> bool:
    if hint is ClassVar or get_origin(hint) is ClassVar:
        return True
    # unresolved string annotation
    return isinstance(hint, str) and hint.replace('typing.', '').startswith('ClassVar')


class _LenientNamespace(dict):
    """Annotation namespace where names only imported for type checking read as Any."""

    def __missing__(self, key):
        return Any


def _resolve_hint(hint: Any, namespace: dict) -> Any:
    if not isinstance(hint, str):
        return hint
    try:
        return eval(hint, {}, namespace)
    except (SyntaxError, TypeError, AttributeError):
        return hint


def _own_annotations(klass: type) -> Dict[str, Any]:
    if '__annotations__' in klass.__dict__:
        return klass.__dict__['__annotations__']
    # lazily evaluated annotations (Python 3.14+)
    if getattr(klass, '__annotate__', None) is None:
        return {}
    try:
        return klass.__annotations__
    except NameError:
        import annotationlib
        return annotationlib.get_annotations(klass, format=annotationlib.Format.STRING)


def _type_hints(entity_type: type) -> Dict[str, Any]:
    """Annotations of entity_type and its bases, base classes first."""
    try:
        return get_type_hints(entity_type, include_extras=True)
    except (NameError, TypeError):
        pass

    # a forward reference can't be resolved, so resolve one annotation at a time
    hints = {}
    for klass in reversed(entity_type.__mro__):
        annotations = _own_annotations(klass)
        if not annotations:
            continue
        namespace = _LenientNamespace(vars(builtins))
        module = sys.modules.get(klass.__module__)
        if module is not None:
            namespace.update(vars(module))
        namespace.update(vars(klass))
        for name, hint in annotations.items():
            hints[name] = _resolve_hint(hint, namespace)
    return hints


def _excluded(name: str, hint: Any, metadata: Optional[dict] = None) -> Optional[str]:
    """Reason an attribute is not a column, or None if it is one."""
    metadata = metadata or {}
    if name.startswith('_'):
        return 'private'
    if metadata.get('navigation') or _has_marker(hint, Navigation):
        return 'navigation'
    if metadata.get('not_mapped') or _has_marker(hint, NotMapped):
        return 'not mapped'
    if _is_classvar(hint):
        return 'class variable'
    return None


def discover_columns(entity_type: type) -> List[str]:
    """
    Column names for entity_type, in declaration order.

    Raises:
        TypeError: entity_type is not a class
        ValueError: entity_type has no mappable attributes
    """
    if not isinstance(entity_type, type):
        raise TypeError(f"Expected an entity class, got {entity_type!r}")

    hints = _type_hints(entity_type)
    columns = []
    if dataclasses.is_dataclass(entity_type):
        candidates = [(f.name, hints.get(f.name, f.type), f.metadata) for f in dataclasses.fields(entity_type)]
    else:
        candidates = [(name, hint, None) for name, hint in hints.items()]

    for name, hint, metadata in candidates:
        reason = _excluded(name, hint, metadata)
        if reason:
            logger.debug(f"{entity_type.__name__}.{name} skipped: {reason}")
        else:
            columns.append(name)

    if not columns:
        raise ValueError(f"Entity type {entity_type.__name__} has no mapped attributes")
    return columns


def _attribute_names(entity_type: type) -> set:
    names = set(_type_hints(entity_type))
    names.update(name for name in dir(entity_type) if not name.startswith('__'))
    return names


class EntityMap:
    """
    Declarative mapping of one entity type to a destination table.

    Args:
        entity_type: The entity class
        table_name: Destination table (``schema.table`` allowed). Defaults to the class name.
        columns: None to discover columns, a list of attribute names, or a dict of
            ``{column: {'field': attribute, 'fn': callable}}``. ``field`` defaults to
            the column name; ``fn`` is applied to the attribute value.
    """

    def __init__(self, entity_type: type, table_name: Optional[str] = None,
                 columns: Union[None, Iterable[str], Dict[str, ColumnDef]] = None):
        if not isinstance(entity_type, type):
            raise TypeError(f"Expected an entity class, got {entity_type!r}")
        self.entity_type = entity_type
        self.table_name = table_name or entity_type.__name__
        if columns is None:
            columns = discover_columns(entity_type)
        self.columns = self._normalize_columns(columns)

    def _normalize_columns(self, columns) -> Dict[str, ColumnDef]:
        if isinstance(columns, dict):
            items = columns.items()
        else:
            items = ((name, {}) for name in columns)

        normalized = {}
        # plain classes may set attributes in __init__ only, so those are checked per entity
        known = _attribute_names(self.entity_type) if dataclasses.is_dataclass(self.entity_type) else None
        for column, col_def in items:
            col_def = dict(col_def or {})
            unknown_keys = set(col_def) - {'field', 'fn'}
            if unknown_keys:
                raise ValueError(f"Column '{column}' has unknown settings: {sorted(unknown_keys)}")
            field = col_def.setdefault('field', column)
            fn = col_def.setdefault('fn', None)
            if fn is not None and not callable(fn):
                raise ValueError(f"Column '{column}': fn must be callable")
            if known is not None and field not in known:
                raise ValueError(self._missing_attribute(field, column))
            normalized[column] = col_def

        if not normalized:
            raise ValueError(f"No columns mapped for {self.entity_type.__name__}")
        return normalized

    def _missing_attribute(self, field: str, column: str) -> str:
        return f"{self.entity_type.__name__} has no attribute '{field}' for column '{column}'"

    @property
    def column_names(self) -> List[str]:
        return list(self.columns)

    def get_values(self, entity: Any) -> tuple:
        """One value per column, in column order."""
        if entity is None:
            raise TypeError(f"Cannot insert None as {self.entity_type.__name__}")
        if not isinstance(entity, self.entity_type):
            raise TypeError(f"Expected {self.entity_type.__name__}, got {type(entity).__name__}")
        values = []
        for column, col_def in self.columns.items():
            try:
                value = getattr(entity, col_def['field'])
            except AttributeError as e:
                raise ValueError(self._missing_attribute(col_def['field'], column)) from e
            fn: Optional[Callable] = col_def['fn']
            values.append(fn(value) if fn else value)
        return tuple(values)

    def __repr__(self) -> str:
        return f"EntityMap({self.entity_type.__name__} -> {self.table_name}, columns={self.column_names})"
