"""
Staff ID allocation.

Derives the next sequential staff identifier from the existing id set.
Allocation performs no reservation: two enrollments finalizing at the same
time can be handed the same id, and the second insert is rejected by the
store's uniqueness constraint.
"""

import re
from typing import Iterable

DEFAULT_PREFIX = 'FG'

_NON_DIGITS = re.compile(r'[^0-9]')


def next_staff_id(existing_ids: Iterable[str], prefix: str = DEFAULT_PREFIX) -> str:
    """
    Compute the next staff id.

    Non-digit characters are stripped from every existing id and the rest is
    parsed as an integer; ids with no digits are ignored. The result is the
    maximum plus one, zero-padded to 4 digits, with `prefix` prepended.

    Args:
        existing_ids: Ids currently in the store
        prefix: Identifier prefix

    Returns:
        Next id, e.g. 'FG0008'
    """
    highest = 0
    for staff_id in existing_ids:
        digits = _NON_DIGITS.sub('', staff_id or '')
        if not digits:
            continue
        highest = max(highest, int(digits))

    return f'{prefix}{highest + 1:04d}'


def is_staff_id(value: str, prefix: str = DEFAULT_PREFIX) -> bool:
    """Check that `value` looks like an allocated id (prefix + at least 4 digits)."""
    return bool(re.fullmatch(re.escape(prefix) + r'\d{4,}', value or ''))
