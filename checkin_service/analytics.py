"""
Staff analytics.

Per-unit staff distribution and a short allocation insight generated by the
generative oracle.
"""

import json
from collections import Counter
from typing import Any, Dict, List

from .errors import CheckinError
from .logging_config import get_logger
from .models import DistributionUnit, StaffRecord
from .recognition.gemini import GeminiClient
from .store import RecordStore

logger = get_logger(__name__)

INSIGHTS_UNAVAILABLE = 'Unable to generate AI insights at this time.'
NO_INSIGHTS = 'No insights generated.'


def unit_distribution(staff: List[StaffRecord]) -> Dict[str, int]:
    """Count staff per distribution unit. Every unit is present, zero if empty."""
    counts = Counter(s.assigned_unit.value for s in staff)
    return {unit.value: counts.get(unit.value, 0) for unit in DistributionUnit}


def staff_insights(client: GeminiClient, staff: List[StaffRecord]) -> str:
    """
    Ask the oracle for a 2-3 sentence insight on staff allocation.

    Returns:
        Insight text, or a fixed notice if the oracle is unavailable
    """
    prompt = (
        'Analyze the following staff distribution data for a rice factory.\n'
        f'Total Staff: {len(staff)}\n'
        f'Distribution by Unit: {json.dumps(unit_distribution(staff))}\n\n'
        'Provide a concise, strategic insight in 2-3 sentences.\n'
        'Identify if there is any imbalance in staff allocation (e.g., too many people '
        'in one platform vs another) and suggest a simple optimization.'
    )

    try:
        text = client.generate_text(prompt)
    except CheckinError as e:
        logger.error(f'Insight generation failed: {e}')
        return INSIGHTS_UNAVAILABLE

    return text.strip() or NO_INSIGHTS


def summary(store: RecordStore, check_in_limit: int = 20) -> Dict[str, Any]:
    """Dashboard summary: staff totals, unit distribution, recent check-ins."""
    staff = store.list_staff()
    recent = store.recent_check_ins(check_in_limit)

    return {
        'totalStaff': len(staff),
        'distribution': unit_distribution(staff),
        'recentCheckIns': [e.to_row() | {'id': e.id} for e in recent],
    }
