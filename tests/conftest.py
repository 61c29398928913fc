"""
Shared fixtures and fakes.

No test touches the network: oracles are replaced by scripted fakes and HTTP
clients by mocked sessions.
"""

import base64
from typing import Callable, Dict, List, Optional
from unittest.mock import Mock

import pytest

from checkin_service.models import DistributionUnit, StaffImage, StaffRecord
from checkin_service.recognition.backends import (
    BackendMode,
    OracleFailure,
    PairwiseComparison,
    RecognitionBackend,
)
from checkin_service.recognition.quality import QualityVerdict
from checkin_service.settings import SettingsService
from checkin_service.store import InMemoryRecordStore


def make_photo(tag: str) -> str:
    """Distinct, valid base64 data URL per tag."""
    payload = base64.b64encode(f'jpeg:{tag}'.encode()).decode()
    return f'data:image/jpeg;base64,{payload}'


PROBE = make_photo('probe')


def immediate_scheduler(delay, callback):
    callback()
    return None


class ManualScheduler:
    """Collects scheduled callbacks; tests fire them explicitly."""

    def __init__(self):
        self.pending: List[Mock] = []

    def __call__(self, delay, callback):
        handle = Mock()
        handle.delay = delay
        handle.callback = callback
        handle.cancelled = False

        def cancel():
            handle.cancelled = True

        handle.cancel.side_effect = cancel
        self.pending.append(handle)
        return handle

    def run_all(self):
        pending, self.pending = self.pending, []
        for handle in pending:
            if not handle.cancelled:
                handle.callback()


class FakeGate:
    """Quality gate returning scripted verdicts (default: accept)."""

    def __init__(self, verdicts: Optional[List[QualityVerdict]] = None):
        self.verdicts = list(verdicts or [])
        self.calls: List[str] = []

    def check_photo(self, image: str) -> QualityVerdict:
        self.calls.append(image)
        if self.verdicts:
            return self.verdicts.pop(0)
        return QualityVerdict(valid=True, reason='Clear single face')


class FakePairwiseBackend(RecognitionBackend):
    """
    Pairwise backend answering from a reference -> result table.

    References missing from the table compare as a confident non-match.
    """

    mode = BackendMode.PAIRWISE

    def __init__(self, table: Optional[Dict[str, object]] = None, on_call: Optional[Callable] = None):
        self.table = dict(table or {})
        self.on_call = on_call
        self.calls: List[tuple] = []

    def compare_images(self, probe, reference):
        self.calls.append((probe, reference))
        if self.on_call is not None:
            self.on_call(probe, reference)
        result = self.table.get(reference)
        if result is None:
            return PairwiseComparison(match=False, confidence=20.0, explanation='different person')
        return result


class FakeIndexedBackend(RecognitionBackend):
    mode = BackendMode.INDEXED

    def __init__(self, result):
        self.result = result
        self.calls: List[str] = []

    def search_candidate(self, probe):
        self.calls.append(probe)
        return self.result


class FakeSelector:
    def __init__(self, backend: RecognitionBackend):
        self.backend = backend

    def current(self) -> RecognitionBackend:
        return self.backend


def match(confidence: float = 92.0) -> PairwiseComparison:
    return PairwiseComparison(match=True, confidence=confidence, explanation='same person')


def no_match(confidence: float = 30.0) -> PairwiseComparison:
    return PairwiseComparison(match=False, confidence=confidence, explanation='different person')


def unavailable(missing: bool = False) -> OracleFailure:
    return OracleFailure(oracle='Gemini', reason='network error', credentials_missing=missing)


def enroll(
    store: InMemoryRecordStore,
    staff_id: str,
    name: str,
    registered_at: int,
    angles=('front', 'left', 'right'),
    unit: DistributionUnit = DistributionUnit.PLATFORM_A,
    token: Optional[str] = None,
) -> StaffRecord:
    """Put a staff member with one photo per angle into the store."""
    photos = {angle: make_photo(f'{staff_id}-{angle}') for angle in angles}
    record = StaffRecord(
        id=staff_id,
        full_name=name,
        assigned_unit=unit,
        registered_at=registered_at,
        reference_image=photos.get('front') or make_photo(f'{staff_id}-ref'),
        recognition_token=token,
    )
    store.add_staff(record)
    if photos:
        store.add_staff_images(
            staff_id, [StaffImage(staff_id=staff_id, angle=a, image=p) for a, p in photos.items()]
        )
    return record


def fake_response(status: int = 200, payload=None, text: str = '') -> Mock:
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = text or ('' if payload is None else str(payload))
    response.content = b'' if payload is None else b'{}'
    if payload is None:
        response.json.side_effect = ValueError('no JSON')
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def settings(store):
    return SettingsService(store)


@pytest.fixture
def manual_scheduler():
    return ManualScheduler()
