"""ORM-level checks shared by the models' ``@validates`` hooks.

They run on every attribute assignment, so bad amounts or unknown statuses are
rejected before a flush no matter which service wrote them.
"""

from decimal import Decimal
from enum import Enum
from typing import Type


def non_negative(key: str, value):
    """Amounts and hours can be zero but never negative."""
    if value is not None and Decimal(str(value)) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def one_of(key: str, value, choices: Type[Enum]):
    """Accept a member of ``choices`` or its value; store the plain value."""
    if isinstance(value, choices):
        return value.value
    allowed = {c.value for c in choices}
    if value is not None and value not in allowed:
        raise ValueError(f"{key} must be one of {sorted(allowed)}, got {value!r}")
    return value
