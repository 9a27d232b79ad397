# bulkaction/utils.py
"""
Utility functions for bulkaction.
"""

import itertools
import re
from typing import Any, Iterable, List, Optional

# Characters/sequences that could enable injection or break SQL parsing
_DANGEROUS_PATTERNS = ['\x00', '\n', '\r', '"', '`', ';', '\x1a', '--', '/*', '*/']


def validate_identifier(identifier: str, max_length: int = 128) -> str:
    """
    Validate that a table or column name is safe to splice into SQL (even if it needs quoting).
    Returns the identifier if valid, raises ValueError if invalid.
    """
    if '.' in identifier:
        parts = identifier.split('.')
        return '.'.join(validate_identifier(part, max_length) for part in parts)

    if not identifier:
        raise ValueError("Invalid identifier: cannot be empty")
    # '#' for SQL Server temp tables
    if not (identifier[0].isalpha() or identifier[0] in '_#'):
        raise ValueError(f"Invalid identifier: must start with a letter: {identifier}")
    if len(identifier) > max_length:
        raise ValueError(f"Invalid identifier: exceeds max length of {max_length}")

    for pattern in _DANGEROUS_PATTERNS:
        if pattern in identifier:
            raise ValueError(f"Invalid identifier: contains dangerous pattern '{pattern}': {identifier}")

    if identifier.startswith(' ') or identifier.endswith(' '):
        raise ValueError(f"Invalid identifier: has leading/trailing spaces: {identifier}")

    return identifier


def identifier_needs_quoting(identifier: str) -> bool:
    """Check if identifier needs quoting to keep its exact case."""
    if identifier.startswith('#'):
        return False
    return not re.match(r'^([a-z_][a-z0-9_]*|[A-Z_][A-Z0-9_]*)$', identifier)


def quote_identifier(identifier: str, db_type: Optional[str] = None) -> str:
    """
    Quote identifier, handling qualified names by splitting on dots.
    MySQL gets backticks, everything else ANSI double quotes.
    """
    if '.' in identifier:
        return '.'.join(quote_identifier(part, db_type) for part in identifier.split('.'))

    if identifier_needs_quoting(identifier):
        if db_type == 'mysql':
            return f'`{identifier}`'
        return f'"{identifier}"'
    return identifier


def batch_iterable(iterable: Iterable[Any], batch_size: int) -> Iterable[List[Any]]:
    """
    Batch an iterable into chunks of specified size.

    Args:
        iterable: The iterable to batch
        batch_size: Size of each batch

    Yields:
        Lists of items up to batch_size length
    """
    iterator = iter(iterable)
    while True:
        batch = list(itertools.islice(iterator, batch_size))
        if not batch:
            break
        yield batch


def type_path(entity_type: type) -> str:
    """Dotted ``module.QualName`` path used to look entity types up in config."""
    return f"{entity_type.__module__}.{entity_type.__qualname__}"
