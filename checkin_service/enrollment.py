"""
Staff enrollment.

CaptureSession is the per-enrollment state machine over a fixed, ordered set
of photo angles (front, left, right by default):

    SELECTING_ANGLE -> AWAITING_CAPTURE -> PENDING_QUALITY_CHECK
        -> ANGLE_ACCEPTED (auto-advance after a short delay)
        -> ANGLE_REJECTED (retake or navigate)
    ... -> ALL_ANGLES_COMPLETE

Navigation never discards another angle's photo. Finalization is possible only
when every angle holds an accepted photo.

EnrollmentService allocates ids, persists finalized sessions (staff record,
then image set, with a compensating delete if the second write fails) and
removes staff.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from .errors import CheckinError, StoreError, ValidationError
from .logging_config import get_logger
from .models import DistributionUnit, StaffImage, StaffRecord, now_ms
from .recognition.facepp import FacePPClient
from .recognition.quality import QualityGate
from .settings import SettingsService
from .store import RecordStore
from .utils.ids import is_staff_id, next_staff_id
from .utils.images import require_photo
from .utils.timing import Scheduler, timer_scheduler

logger = get_logger(__name__)

PRIMARY_ANGLE = 'front'
FEATURE_VECTOR_SIZE = 128


class CaptureState(str, Enum):
    SELECTING_ANGLE = 'selecting_angle'
    AWAITING_CAPTURE = 'awaiting_capture'
    PENDING_QUALITY_CHECK = 'pending_quality_check'
    ANGLE_ACCEPTED = 'angle_accepted'
    ANGLE_REJECTED = 'angle_rejected'
    ALL_ANGLES_COMPLETE = 'all_angles_complete'


@dataclass(frozen=True)
class CapturedPhoto:
    angle: str
    image: str
    valid: bool
    reason: str
    skipped: bool = False


class CaptureSession:
    """
    Enrollment capture state machine.

    Single writer: one operator drives one session. Timer callbacks for the
    auto-advance are serialized with operator actions by an internal lock.

    Args:
        gate: Quality gate used for every capture
        angles: Ordered angles to capture
        auto_advance_seconds: Delay before moving on after an accepted photo
        scheduler: Callable(delay, callback) used for the auto-advance
    """

    def __init__(
        self,
        gate: QualityGate,
        angles: Sequence[str],
        auto_advance_seconds: float = 1.0,
        scheduler: Scheduler = timer_scheduler,
    ):
        if not angles:
            raise ValueError('At least one capture angle is required')

        self.gate = gate
        self.angles = tuple(angles)
        self.auto_advance_seconds = auto_advance_seconds
        self.scheduler = scheduler

        self._lock = threading.RLock()
        self._photos: Dict[str, CapturedPhoto] = {}
        self._index = 0
        self._pending_advance: Any = None
        self.closed = False
        self.state: Optional[CaptureState] = None
        self.history: List[CaptureState] = []

        self._transition(CaptureState.SELECTING_ANGLE)
        self._transition(CaptureState.AWAITING_CAPTURE)

    # --- Introspection ---

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_angle(self) -> str:
        return self.angles[self._index]

    @property
    def photos(self) -> Dict[str, CapturedPhoto]:
        """Captured photos keyed by angle, in configured angle order."""
        with self._lock:
            return {a: self._photos[a] for a in self.angles if a in self._photos}

    def photo_for(self, angle: str) -> Optional[CapturedPhoto]:
        with self._lock:
            return self._photos.get(angle)

    @property
    def accepted_count(self) -> int:
        with self._lock:
            return sum(1 for p in self._photos.values() if p.valid)

    def missing_angles(self) -> List[str]:
        """Angles that do not yet hold an accepted photo."""
        with self._lock:
            return [
                a for a in self.angles
                if a not in self._photos or not self._photos[a].valid
            ]

    @property
    def can_finalize(self) -> bool:
        return not self.closed and not self.missing_angles()

    # --- Transitions ---

    def _transition(self, state: CaptureState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f'Capture session -> {state.value} (angle={self.current_angle})')

    def _settle(self) -> None:
        """Move to the resting state implied by the stored photos."""
        photo = self._photos.get(self.current_angle)
        if not self.missing_angles():
            self._transition(CaptureState.ALL_ANGLES_COMPLETE)
        elif photo is None:
            self._transition(CaptureState.AWAITING_CAPTURE)
        elif photo.valid:
            self._transition(CaptureState.ANGLE_ACCEPTED)
        else:
            self._transition(CaptureState.ANGLE_REJECTED)

    def _cancel_pending_advance(self) -> None:
        handle, self._pending_advance = self._pending_advance, None
        if handle is not None and hasattr(handle, 'cancel'):
            handle.cancel()

    def _ensure_open(self) -> None:
        if self.closed:
            raise ValidationError('Enrollment session is closed')

    def select_angle(self, index: int) -> None:
        """
        Manually select an angle. Any angle may be selected, including one
        that already holds an accepted photo; nothing is discarded.
        """
        with self._lock:
            self._ensure_open()
            if self.state == CaptureState.PENDING_QUALITY_CHECK:
                raise ValidationError('Quality check in progress')
            if not 0 <= index < len(self.angles):
                raise ValidationError(f'Angle index {index} out of range')

            self._cancel_pending_advance()
            self._index = index
            self._transition(CaptureState.SELECTING_ANGLE)
            self._settle()

    def next_angle(self) -> None:
        if self._index < len(self.angles) - 1:
            self.select_angle(self._index + 1)

    def previous_angle(self) -> None:
        if self._index > 0:
            self.select_angle(self._index - 1)

    def retake(self) -> None:
        """Clear the current angle's photo only."""
        with self._lock:
            self._ensure_open()
            if self.state == CaptureState.PENDING_QUALITY_CHECK:
                raise ValidationError('Quality check in progress')

            self._cancel_pending_advance()
            self._photos.pop(self.current_angle, None)
            logger.info(f'Retake requested for angle {self.current_angle}')
            self._transition(CaptureState.AWAITING_CAPTURE)

    def submit_capture(self, image: str) -> CapturedPhoto:
        """
        Submit a capture for the current angle.

        The photo replaces any previous photo for that angle. On acceptance the
        session advances to the next angle after `auto_advance_seconds`,
        unless this was the last angle or every angle is already complete.

        Raises:
            ValidationError: Empty/invalid photo, closed session, or a check
                already in progress
        """
        require_photo(image)

        with self._lock:
            self._ensure_open()
            if self.state == CaptureState.PENDING_QUALITY_CHECK:
                raise ValidationError('Quality check in progress')

            self._cancel_pending_advance()
            index = self._index
            angle = self.current_angle
            self._transition(CaptureState.PENDING_QUALITY_CHECK)

        verdict = self.gate.check_photo(image)
        photo = CapturedPhoto(
            angle=angle,
            image=image,
            valid=verdict.valid,
            reason=verdict.reason,
            skipped=verdict.skipped,
        )

        schedule_advance = False
        with self._lock:
            if self.closed:
                return photo

            self._photos[angle] = photo

            if photo.valid:
                logger.info(f'Angle {angle} accepted: {photo.reason}')
                self._transition(CaptureState.ANGLE_ACCEPTED)
                if not self.missing_angles():
                    self._transition(CaptureState.ALL_ANGLES_COMPLETE)
                elif index < len(self.angles) - 1:
                    schedule_advance = True
            else:
                logger.info(f'Angle {angle} rejected: {photo.reason}')
                self._transition(CaptureState.ANGLE_REJECTED)

        if schedule_advance:
            handle = self.scheduler(self.auto_advance_seconds, lambda: self._auto_advance(index))
            with self._lock:
                if self._index == index and self.state == CaptureState.ANGLE_ACCEPTED:
                    self._pending_advance = handle

        return photo

    def _auto_advance(self, from_index: int) -> None:
        with self._lock:
            self._pending_advance = None
            # Operator navigated or retook in the meantime
            if self.closed or self._index != from_index:
                return
            if self.state != CaptureState.ANGLE_ACCEPTED:
                return
            self._index = from_index + 1
            self._transition(CaptureState.SELECTING_ANGLE)
            self._settle()

    def close(self) -> None:
        """Discard the session (after finalize or abandonment)."""
        with self._lock:
            self._cancel_pending_advance()
            self.closed = True
            self._photos.clear()

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'state': self.state.value if self.state else None,
                'currentAngle': self.current_angle,
                'currentIndex': self._index,
                'angles': list(self.angles),
                'photos': {
                    angle: {'valid': p.valid, 'reason': p.reason, 'skipped': p.skipped}
                    for angle, p in self.photos.items()
                },
                'canFinalize': self.can_finalize,
            }


class EnrollmentService:
    """
    Staff enrollment and removal.

    Args:
        store: Record store
        gate: Quality gate handed to new capture sessions
        settings: Settings service (decides whether faceset indexing runs)
        facepp: Indexed-search client used to index new staff, optional
        angles: Required capture angles
        id_prefix: Staff id prefix
        auto_advance_seconds: Capture auto-advance delay
        scheduler: Scheduler for capture sessions
    """

    def __init__(
        self,
        store: RecordStore,
        gate: QualityGate,
        settings: Optional[SettingsService] = None,
        facepp: Optional[FacePPClient] = None,
        angles: Sequence[str] = ('front', 'left', 'right'),
        id_prefix: str = 'FG',
        auto_advance_seconds: float = 1.0,
        scheduler: Scheduler = timer_scheduler,
    ):
        self.store = store
        self.gate = gate
        self.settings = settings
        self.facepp = facepp
        self.angles = tuple(angles)
        self.id_prefix = id_prefix
        self.auto_advance_seconds = auto_advance_seconds
        self.scheduler = scheduler

    def allocate_id(self) -> str:
        """
        Compute the next staff id from the store.

        Not reserved: concurrent enrollments may receive the same id.
        """
        return next_staff_id(self.store.list_staff_ids(), self.id_prefix)

    def start_session(self) -> CaptureSession:
        return CaptureSession(
            self.gate,
            self.angles,
            auto_advance_seconds=self.auto_advance_seconds,
            scheduler=self.scheduler,
        )

    def _primary_photo(self, session: CaptureSession) -> CapturedPhoto:
        photos = session.photos
        if PRIMARY_ANGLE in photos:
            return photos[PRIMARY_ANGLE]
        return photos[self.angles[0]]

    def finalize(
        self,
        session: CaptureSession,
        staff_id: str,
        full_name: str,
        unit: Union[DistributionUnit, str],
    ) -> StaffRecord:
        """
        Persist a completed capture session as a new staff member.

        Args:
            session: Session with every angle accepted
            staff_id: Id obtained from allocate_id()
            full_name: Staff member's name
            unit: Assigned distribution unit

        Returns:
            The stored StaffRecord

        Raises:
            ValidationError: Missing name, unallocated id, unknown unit or
                missing angle captures (nothing is written)
            StoreError: Persistence failed (no partial staff record remains
                unless the compensating delete also failed)
        """
        name = (full_name or '').strip()
        if not name:
            raise ValidationError('Staff name is required')
        if not is_staff_id(staff_id, self.id_prefix):
            raise ValidationError('Staff id has not been allocated')
        try:
            assigned_unit = DistributionUnit(unit)
        except ValueError as e:
            raise ValidationError(f'Unknown distribution unit: {unit}') from e
        if session.closed:
            raise ValidationError('Enrollment session is closed')
        missing = session.missing_angles()
        if missing:
            raise ValidationError(f"Missing accepted photos for: {', '.join(missing)}")

        photos = session.photos
        record = StaffRecord(
            id=staff_id,
            full_name=name,
            assigned_unit=assigned_unit,
            registered_at=now_ms(),
            reference_image=self._primary_photo(session).image,
            feature_vector=np.random.random(FEATURE_VECTOR_SIZE).tolist(),
        )
        images = [
            StaffImage(staff_id=staff_id, angle=angle, image=photo.image)
            for angle, photo in photos.items()
        ]

        self.store.add_staff(record)
        try:
            self.store.add_staff_images(staff_id, images)
        except StoreError:
            logger.error(f'Saving images for {staff_id} failed, removing staff record')
            self._compensate(staff_id)
            raise

        session.close()
        logger.info(f'✅ Enrolled {name} ({staff_id}) in {assigned_unit.value} with {len(images)} photos')

        self._index_in_faceset(record)
        return record

    def _compensate(self, staff_id: str) -> None:
        try:
            self.store.delete_staff_images(staff_id)
            self.store.delete_staff(staff_id)
        except StoreError as e:
            logger.error(f'Compensating delete for {staff_id} failed, record may be orphaned: {e}')

    def _index_in_faceset(self, record: StaffRecord) -> None:
        """Add the primary photo to the faceset and attach the token to the record."""
        if self.facepp is None or self.settings is None:
            return

        try:
            if not self.settings.has_faceset():
                return
            token = self.facepp.detect_face(record.reference_image)
            if not token:
                logger.warning(f'No face detected for {record.id}, not indexed')
                return
            self.facepp.add_face(token, record.id)
            self.store.update_staff_recognition_token(record.id, token)
            record.recognition_token = token
            logger.info(f'Indexed {record.id} in faceset')
        except CheckinError as e:
            logger.warning(f'Faceset indexing for {record.id} failed: {e}')

    def remove_staff(self, staff_id: str) -> bool:
        """
        Delete a staff member together with their image set.

        Returns:
            False if the staff member does not exist
        """
        record = self.store.get_staff(staff_id)
        if record is None:
            return False

        if record.recognition_token and self.facepp is not None:
            try:
                self.facepp.remove_face(record.recognition_token)
            except CheckinError as e:
                logger.warning(f'Could not remove {staff_id} from faceset: {e}')

        self.store.delete_staff_images(staff_id)
        self.store.delete_staff(staff_id)
        logger.info(f'Removed staff {staff_id}')
        return True
