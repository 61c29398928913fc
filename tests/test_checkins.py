import pytest

from checkin_service.checkins import CheckInRecorder, clamp_confidence
from checkin_service.models import DistributionUnit


@pytest.mark.parametrize('raw,expected', [
    (92.04, 92.0),
    (88.96, 89.0),
    (120, 100.0),
    (-3, 0.0),
])
def test_clamp_confidence(raw, expected):
    assert clamp_confidence(raw) == expected


def test_record_denormalizes_staff_fields(store):
    recorder = CheckInRecorder(store)

    event = recorder.record('FG0001', 'Ana Cruz', 'PLATFORM_C', 91.27)

    assert event.id == 1
    assert event.staff_name == 'Ana Cruz'
    assert event.assigned_unit == DistributionUnit.PLATFORM_C
    assert event.confidence_score == 91.3
    assert event.timestamp > 0


def test_recent_newest_first_with_limit(store):
    recorder = CheckInRecorder(store)
    for n in range(5):
        recorder.record(f'FG000{n + 1}', f'Staff {n}', DistributionUnit.PLATFORM_A, 90)

    recent = recorder.recent(limit=3)

    assert [e.staff_id for e in recent] == ['FG0005', 'FG0004', 'FG0003']
