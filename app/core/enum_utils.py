"""
Helpers for VARCHAR-backed enum fields.

Invoice type, invoice status and inventory sync status are stored as
VARCHAR(20) in UPPERCASE, not as database ENUM types. Pydantic schemas use
the ``str, Enum`` classes in ``app.models.billing`` for input validation;
values read back from the database are plain strings and are returned as-is.
"""

from enum import Enum
from typing import Any, Optional


def get_enum_value(value: Any) -> Optional[str]:
    """
    Return the stored string for an enum member or a raw string.

    >>> get_enum_value(InvoiceType.SELLING)
    'SELLING'
    >>> get_enum_value("SELLING")
    'SELLING'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def enum_comment(enum_class: type[Enum]) -> str:
    """Comma-separated list of valid values, for column comments."""
    return ", ".join(e.value for e in enum_class)
