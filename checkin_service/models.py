"""
Domain records for Check-in Service.

Records map to snake_case rows in the record store:
- staff: StaffRecord
- staff_images: StaffImage (one row per captured angle)
- check_ins: CheckInEvent (append-only)

All timestamps are epoch milliseconds.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DistributionUnit(str, Enum):
    """Fixed set of units a staff member can be assigned to."""

    PLATFORM_A = 'PLATFORM_A'
    PLATFORM_B = 'PLATFORM_B'
    PLATFORM_C = 'PLATFORM_C'
    LOADING_DOCK_1 = 'LOADING_DOCK_1'
    PACKAGING_ZONE = 'PACKAGING_ZONE'

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ')


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class StaffRecord:
    """
    Enrolled staff member.

    Attributes:
        id: Unique sequential identifier, e.g. FG0001
        full_name: Display name
        assigned_unit: Distribution unit
        registered_at: Creation timestamp (ms)
        reference_image: Primary reference photo (base64 / data URL)
        feature_vector: Placeholder vector, not read by matching logic
        recognition_token: Handle issued by the indexed-search oracle
    """

    id: str
    full_name: str
    assigned_unit: DistributionUnit
    registered_at: int
    reference_image: str
    feature_vector: List[float] = field(default_factory=list)
    recognition_token: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = {
            'id': self.id,
            'full_name': self.full_name,
            'assigned_unit': self.assigned_unit.value,
            'registered_at': self.registered_at,
            'face_embedding': list(self.feature_vector),
            'reference_image_base64': self.reference_image,
        }
        if self.recognition_token:
            row['face_token'] = self.recognition_token
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'StaffRecord':
        return cls(
            id=row['id'],
            full_name=row['full_name'],
            assigned_unit=DistributionUnit(row['assigned_unit']),
            registered_at=int(row['registered_at']),
            reference_image=row.get('reference_image_base64') or '',
            feature_vector=list(row.get('face_embedding') or []),
            recognition_token=row.get('face_token') or None,
        )


@dataclass
class StaffImage:
    """One angle-tagged enrollment photo."""

    staff_id: str
    angle: str
    image: str
    created_at: Optional[int] = None
    id: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'staff_id': self.staff_id,
            'image_base64': self.image,
            'angle_type': self.angle,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'StaffImage':
        return cls(
            id=row.get('id'),
            staff_id=row['staff_id'],
            angle=row['angle_type'],
            image=row['image_base64'],
            created_at=row.get('created_at'),
        )


@dataclass(frozen=True)
class CheckInEvent:
    """
    Immutable record of one accepted verification.

    Name and unit are copied from the StaffRecord at check-in time and are
    never re-derived afterwards.
    """

    staff_id: str
    staff_name: str
    assigned_unit: DistributionUnit
    timestamp: int
    confidence_score: float
    id: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'staff_id': self.staff_id,
            'staff_name': self.staff_name,
            'assigned_unit': self.assigned_unit.value,
            'timestamp': self.timestamp,
            'confidence_score': self.confidence_score,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'CheckInEvent':
        return cls(
            id=row.get('id'),
            staff_id=row['staff_id'],
            staff_name=row['staff_name'],
            assigned_unit=DistributionUnit(row['assigned_unit']),
            timestamp=int(row['timestamp']),
            confidence_score=float(row['confidence_score']),
        )
