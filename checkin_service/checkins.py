"""
Check-in recording module.

Appends immutable check-in events to the record store. Only the verification
orchestrator calls record(), and only for an accepted match.
"""

from typing import List, Union

from .logging_config import get_logger
from .models import CheckInEvent, DistributionUnit, now_ms
from .store import RecordStore

logger = get_logger(__name__)


def clamp_confidence(confidence: float) -> float:
    """Clamp to [0, 100] and round to one decimal."""
    return round(min(max(float(confidence), 0.0), 100.0), 1)


class CheckInRecorder:
    """Append-only check-in log."""

    def __init__(self, store: RecordStore):
        self.store = store

    def record(
        self,
        staff_id: str,
        staff_name: str,
        assigned_unit: Union[DistributionUnit, str],
        confidence: float,
    ) -> CheckInEvent:
        """
        Append one check-in event.

        Args:
            staff_id: Matched staff id
            staff_name: Name at the moment of check-in
            assigned_unit: Unit at the moment of check-in
            confidence: Decision confidence (clamped to 0-100)

        Returns:
            The stored event

        Raises:
            StoreError: If the store rejects the write
        """
        event = CheckInEvent(
            staff_id=staff_id,
            staff_name=staff_name,
            assigned_unit=DistributionUnit(assigned_unit),
            timestamp=now_ms(),
            confidence_score=clamp_confidence(confidence),
        )

        logger.info(f'📤 Recording check-in for {staff_id} ({event.confidence_score:.1f}%)')
        return self.store.add_check_in(event)

    def recent(self, limit: int = 50) -> List[CheckInEvent]:
        """Most recent check-ins first, at most `limit`."""
        return self.store.recent_check_ins(limit)
