"""
Utility modules package.
"""

from .ids import next_staff_id, is_staff_id
from .images import strip_data_url, require_photo
from .timing import format_uptime, timer_scheduler

__all__ = [
    'next_staff_id',
    'is_staff_id',
    'strip_data_url',
    'require_photo',
    'format_uptime',
    'timer_scheduler',
]
