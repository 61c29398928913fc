from unittest.mock import Mock, patch

import pytest

from checkin_service.enrollment import CaptureSession, CaptureState, EnrollmentService
from checkin_service.errors import OracleUnavailable, StoreError, ValidationError
from checkin_service.models import DistributionUnit
from checkin_service.recognition.quality import QualityVerdict
from checkin_service.settings import FACEPP_API_KEY, FACEPP_API_SECRET, FACEPP_FACESET_TOKEN

from .conftest import FakeGate, enroll, immediate_scheduler, make_photo

REJECTED = QualityVerdict(valid=False, reason='Face not visible')


def session(gate=None, scheduler=immediate_scheduler) -> CaptureSession:
    return CaptureSession(gate or FakeGate(), ('front', 'left', 'right'), scheduler=scheduler)


def capture_all(s: CaptureSession) -> None:
    for index, angle in enumerate(s.angles):
        s.select_angle(index)
        s.submit_capture(make_photo(angle))


class TestCaptureSession:

    def test_starts_awaiting_first_angle(self):
        s = session()

        assert s.history == [CaptureState.SELECTING_ANGLE, CaptureState.AWAITING_CAPTURE]
        assert s.current_angle == 'front'
        assert not s.can_finalize

    def test_accepted_photo_auto_advances(self):
        s = session()

        photo = s.submit_capture(make_photo('front'))

        assert photo.valid
        assert s.current_angle == 'left'
        assert s.state == CaptureState.AWAITING_CAPTURE
        assert CaptureState.PENDING_QUALITY_CHECK in s.history
        assert CaptureState.ANGLE_ACCEPTED in s.history

    def test_auto_advance_waits_for_scheduler(self, manual_scheduler):
        s = session(scheduler=manual_scheduler)

        s.submit_capture(make_photo('front'))
        assert s.state == CaptureState.ANGLE_ACCEPTED
        assert s.current_angle == 'front'
        assert manual_scheduler.pending[0].delay == 1.0

        manual_scheduler.run_all()
        assert s.current_angle == 'left'

    def test_manual_navigation_cancels_auto_advance(self, manual_scheduler):
        s = session(scheduler=manual_scheduler)

        s.submit_capture(make_photo('front'))
        s.select_angle(2)
        manual_scheduler.run_all()

        assert s.current_angle == 'right'
        assert s.photo_for('front').valid

    def test_rejected_photo_stays_on_angle(self):
        s = session(gate=FakeGate([REJECTED]))

        photo = s.submit_capture(make_photo('front'))

        assert not photo.valid
        assert s.state == CaptureState.ANGLE_REJECTED
        assert s.current_angle == 'front'
        assert s.missing_angles() == ['front', 'left', 'right']

    def test_last_angle_does_not_advance(self, manual_scheduler):
        s = session(scheduler=manual_scheduler)

        s.select_angle(2)
        s.submit_capture(make_photo('right'))

        assert s.state == CaptureState.ANGLE_ACCEPTED
        assert manual_scheduler.pending == []

    def test_all_angles_complete_enables_finalize(self):
        s = session()
        capture_all(s)

        assert s.state == CaptureState.ALL_ANGLES_COMPLETE
        assert s.can_finalize
        assert list(s.photos) == ['front', 'left', 'right']

    def test_retake_clears_current_angle_only(self):
        s = session()
        capture_all(s)

        s.select_angle(1)
        s.retake()

        assert s.state == CaptureState.AWAITING_CAPTURE
        assert not s.can_finalize
        assert s.missing_angles() == ['left']
        assert s.photo_for('front') is not None
        assert s.photo_for('right') is not None

        s.submit_capture(make_photo('left-again'))
        assert s.can_finalize

    def test_navigation_never_discards_photos(self):
        s = session()
        capture_all(s)

        s.previous_angle()
        s.select_angle(0)
        s.next_angle()

        assert s.can_finalize
        assert s.state == CaptureState.ALL_ANGLES_COMPLETE

    def test_recapture_replaces_photo(self):
        s = session(gate=FakeGate([QualityVerdict(True, 'ok'), REJECTED]))

        s.submit_capture(make_photo('front-1'))
        s.select_angle(0)
        s.submit_capture(make_photo('front-2'))

        assert s.photo_for('front').image == make_photo('front-2')
        assert not s.photo_for('front').valid

    def test_empty_photo_rejected_before_quality_check(self):
        gate = FakeGate()
        s = session(gate=gate)

        with pytest.raises(ValidationError):
            s.submit_capture('')
        with pytest.raises(ValidationError):
            s.submit_capture('data:image/jpeg;base64,!!!not-base64!!!')

        assert gate.calls == []
        assert s.state == CaptureState.AWAITING_CAPTURE

    def test_out_of_range_angle(self):
        with pytest.raises(ValidationError):
            session().select_angle(3)

    def test_closed_session_rejects_actions(self):
        s = session()
        s.close()

        with pytest.raises(ValidationError):
            s.submit_capture(make_photo('front'))
        with pytest.raises(ValidationError):
            s.retake()


class TestEnrollmentService:

    @pytest.fixture
    def service(self, store):
        return EnrollmentService(store, FakeGate(), scheduler=immediate_scheduler)

    def test_allocate_id(self, store, service):
        assert service.allocate_id() == 'FG0001'

        enroll(store, 'FG0004', 'Ana', 1)
        assert service.allocate_id() == 'FG0005'

    def test_finalize_persists_staff_and_images(self, store, service):
        s = service.start_session()
        capture_all(s)

        record = service.finalize(s, 'FG0001', '  Ana Cruz ', DistributionUnit.PLATFORM_B)

        stored = store.get_staff('FG0001')
        assert stored is record
        assert stored.full_name == 'Ana Cruz'
        assert stored.assigned_unit == DistributionUnit.PLATFORM_B
        assert stored.reference_image == make_photo('front')
        assert len(stored.feature_vector) == 128
        assert [img.angle for img in store.get_staff_images('FG0001')] == ['front', 'left', 'right']
        assert s.closed

    def test_finalize_accepts_unit_value(self, store, service):
        s = service.start_session()
        capture_all(s)

        record = service.finalize(s, 'FG0001', 'Ana', 'LOADING_DOCK_1')

        assert record.assigned_unit == DistributionUnit.LOADING_DOCK_1

    @pytest.mark.parametrize('staff_id,name,unit', [
        ('FG0001', '   ', 'PLATFORM_A'),
        ('Generating...', 'Ana', 'PLATFORM_A'),
        ('FG0001', 'Ana', 'ROOFTOP'),
    ])
    def test_finalize_validation_writes_nothing(self, store, service, staff_id, name, unit):
        s = service.start_session()
        capture_all(s)

        with pytest.raises(ValidationError):
            service.finalize(s, staff_id, name, unit)

        assert store.list_staff() == []
        assert not s.closed

    def test_finalize_requires_every_angle(self, store, service):
        s = service.start_session()
        s.submit_capture(make_photo('front'))

        with pytest.raises(ValidationError, match='left, right'):
            service.finalize(s, 'FG0001', 'Ana', 'PLATFORM_A')

        assert store.list_staff() == []

    def test_image_write_failure_removes_staff_record(self, store, service):
        s = service.start_session()
        capture_all(s)

        with patch.object(store, 'add_staff_images', side_effect=StoreError('images table down')):
            with pytest.raises(StoreError):
                service.finalize(s, 'FG0001', 'Ana', 'PLATFORM_A')

        assert store.get_staff('FG0001') is None
        assert store.get_staff_images('FG0001') == []
        assert not s.closed

    def test_duplicate_id_is_rejected_by_store(self, store, service):
        enroll(store, 'FG0001', 'Ana', 1)
        s = service.start_session()
        capture_all(s)

        with pytest.raises(StoreError):
            service.finalize(s, 'FG0001', 'Ben', 'PLATFORM_A')

        assert store.get_staff('FG0001').full_name == 'Ana'

    def test_remove_staff(self, store, service):
        enroll(store, 'FG0001', 'Ana', 1)

        assert service.remove_staff('FG0001')
        assert store.get_staff('FG0001') is None
        assert store.get_staff_images('FG0001') == []
        assert not service.remove_staff('FG0001')


class TestFacesetIndexing:

    @pytest.fixture
    def facepp(self):
        client = Mock()
        client.detect_face.return_value = 'face-tok-1'
        return client

    @pytest.fixture
    def service(self, store, settings, facepp):
        settings.set(FACEPP_API_KEY, 'key')
        settings.set(FACEPP_API_SECRET, 'secret')
        settings.set(FACEPP_FACESET_TOKEN, 'fs-1')
        return EnrollmentService(
            store, FakeGate(), settings=settings, facepp=facepp, scheduler=immediate_scheduler,
        )

    def test_new_staff_is_indexed(self, store, service, facepp):
        s = service.start_session()
        capture_all(s)

        record = service.finalize(s, 'FG0001', 'Ana', 'PLATFORM_A')

        facepp.detect_face.assert_called_once_with(make_photo('front'))
        facepp.add_face.assert_called_once_with('face-tok-1', 'FG0001')
        assert record.recognition_token == 'face-tok-1'
        assert store.get_staff('FG0001').recognition_token == 'face-tok-1'

    def test_indexing_failure_keeps_enrollment(self, store, service, facepp):
        facepp.add_face.side_effect = OracleUnavailable('Face++', 'down')
        s = service.start_session()
        capture_all(s)

        record = service.finalize(s, 'FG0001', 'Ana', 'PLATFORM_A')

        assert record.recognition_token is None
        assert store.get_staff('FG0001') is not None

    def test_remove_staff_removes_face(self, store, service, facepp):
        enroll(store, 'FG0001', 'Ana', 1, token='face-tok-1')

        assert service.remove_staff('FG0001')
        facepp.remove_face.assert_called_once_with('face-tok-1')

    def test_settings_outage_during_indexing_keeps_enrollment(self, store, service, facepp):
        s = service.start_session()
        capture_all(s)

        with patch.object(store, 'get_setting', side_effect=StoreError('db down')):
            record = service.finalize(s, 'FG0001', 'Ana', 'PLATFORM_A')

        assert store.get_staff('FG0001') is record
        assert record.recognition_token is None
        facepp.detect_face.assert_not_called()
