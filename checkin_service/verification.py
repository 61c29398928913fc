"""
Check-in verification.

VerificationOrchestrator runs one probe photo against the enrolled staff:

    IDLE -> SCANNING -> SUCCESS | FAILURE -> (display window) -> IDLE

Pairwise mode walks candidates in registration recency order and, for each,
compares the probe with every reference photo, one oracle call at a time.
The first candidate whose consensus decision matches wins; later candidates
are never evaluated. Indexed mode issues a single search against the faceset.

Latency therefore grows linearly with staff count times reference photos in
pairwise mode.

Failures of any kind (no staff, no match, oracle unavailable, cancellation,
store errors) resolve FAILURE and never write a check-in.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from .checkins import CheckInRecorder
from .errors import StoreError
from .logging_config import get_logger
from .models import CheckInEvent, StaffRecord
from .recognition.backends import BackendMode, BackendSelector, RecognitionBackend
from .recognition.consensus import ConsensusDecision, indexed_consensus, pairwise_consensus
from .store import RecordStore
from .utils.images import require_photo
from .utils.timing import Scheduler, timer_scheduler

logger = get_logger(__name__)

NO_STAFF_MESSAGE = 'No staff database found. Please enroll staff first.'
NOT_RECOGNIZED_MESSAGE = 'Face not recognized. Please ensure you are registered.'
UNAVAILABLE_MESSAGE = 'Recognition service unavailable. Please try again shortly.'
NOT_CONFIGURED_MESSAGE = 'Recognition service not configured. Please set up API credentials in Settings.'
CANCELLED_MESSAGE = 'Verification cancelled.'
SYSTEM_ERROR_MESSAGE = 'System error during verification.'


class VerificationState(str, Enum):
    IDLE = 'idle'
    SCANNING = 'scanning'
    SUCCESS = 'success'
    FAILURE = 'failure'


class FailureReason(str, Enum):
    NO_STAFF = 'no_staff'
    NOT_RECOGNIZED = 'not_recognized'
    UNAVAILABLE = 'unavailable'
    NOT_CONFIGURED = 'not_configured'
    CANCELLED = 'cancelled'
    STORE_ERROR = 'store_error'


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Resolution of one verification attempt.

    Attributes:
        success: A staff member was accepted and a check-in recorded
        message: Text for the kiosk display
        confidence: Decision confidence (0-100)
        staff: Matched staff record on success
        check_in: Recorded event on success
        failure_reason: Why the attempt failed
        mode: Backend family used
        decisions: (staff_id, decision) for every candidate evaluated
    """

    success: bool
    message: str
    confidence: float = 0.0
    staff: Optional[StaffRecord] = None
    check_in: Optional[CheckInEvent] = None
    failure_reason: Optional[FailureReason] = None
    mode: Optional[BackendMode] = None
    decisions: Tuple[Tuple[str, ConsensusDecision], ...] = field(default_factory=tuple)


class _Cancelled(Exception):
    pass


class VerificationOrchestrator:
    """
    Kiosk verification state machine.

    Args:
        store: Record store (staff, images)
        selector: Chooses pairwise or indexed backend per attempt
        recorder: Check-in recorder, called only on success
        confidence_threshold: Pairwise qualifying confidence
        required_matches: Pairwise required matches (None = default policy)
        indexed_fallback_threshold: Indexed threshold if the oracle gives none
        display_seconds: Result display window before returning to IDLE
        scheduler: Callable(delay, callback) for the display window
    """

    def __init__(
        self,
        store: RecordStore,
        selector: BackendSelector,
        recorder: CheckInRecorder,
        confidence_threshold: float = 85.0,
        required_matches: Optional[int] = None,
        indexed_fallback_threshold: float = 65.0,
        display_seconds: float = 5.0,
        scheduler: Scheduler = timer_scheduler,
    ):
        self.store = store
        self.selector = selector
        self.recorder = recorder
        self.confidence_threshold = confidence_threshold
        self.required_matches = required_matches
        self.indexed_fallback_threshold = indexed_fallback_threshold
        self.display_seconds = display_seconds
        self.scheduler = scheduler

        self._scan_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._cancel = threading.Event()
        self._state = VerificationState.IDLE
        self._last_outcome: Optional[VerificationOutcome] = None
        self._pending_reset: Any = None
        self._attempt = 0

    @property
    def state(self) -> VerificationState:
        with self._state_lock:
            return self._state

    @property
    def last_outcome(self) -> Optional[VerificationOutcome]:
        with self._state_lock:
            return self._last_outcome

    def submit(self, probe: str) -> Optional[VerificationOutcome]:
        """
        Verify a probe photo.

        Returns:
            The outcome, or None if a verification is already in flight
            (the probe is ignored)

        Raises:
            ValidationError: Empty or malformed probe (before any oracle call)
        """
        require_photo(probe)

        if not self._scan_lock.acquire(blocking=False):
            logger.debug('Verification in progress, probe ignored')
            return None

        try:
            with self._state_lock:
                self._cancel_pending_reset()
                self._cancel.clear()
                self._attempt += 1
                attempt = self._attempt
                self._state = VerificationState.SCANNING
                self._last_outcome = None

            try:
                outcome = self._scan(probe)
            except _Cancelled:
                logger.info('Verification cancelled by operator')
                outcome = self._failure(FailureReason.CANCELLED, CANCELLED_MESSAGE)
            except StoreError as e:
                logger.error(f'Store error during verification: {e}')
                outcome = self._failure(FailureReason.STORE_ERROR, SYSTEM_ERROR_MESSAGE)
            except Exception:
                with self._state_lock:
                    self._state = VerificationState.IDLE
                raise

            self._resolve(outcome, attempt)
            return outcome
        finally:
            self._scan_lock.release()

    def cancel(self) -> bool:
        """
        Abort the in-flight verification.

        The scan stops before its next oracle call and resolves FAILURE
        without recording a check-in.

        Returns:
            True if a scan was in flight
        """
        with self._state_lock:
            if self._state != VerificationState.SCANNING:
                return False
            self._cancel.set()
            return True

    def reset(self) -> None:
        """Return to IDLE immediately (ends the display window)."""
        with self._state_lock:
            if self._state == VerificationState.SCANNING:
                return
            self._cancel_pending_reset()
            self._state = VerificationState.IDLE
            self._last_outcome = None

    # --- Internals ---

    def _cancel_pending_reset(self) -> None:
        handle, self._pending_reset = self._pending_reset, None
        if handle is not None and hasattr(handle, 'cancel'):
            handle.cancel()

    def _resolve(self, outcome: VerificationOutcome, attempt: int) -> None:
        with self._state_lock:
            self._state = VerificationState.SUCCESS if outcome.success else VerificationState.FAILURE
            self._last_outcome = outcome

        if self.display_seconds <= 0:
            self._return_to_idle(attempt)
            return

        handle = self.scheduler(self.display_seconds, lambda: self._return_to_idle(attempt))
        with self._state_lock:
            if self._attempt == attempt:
                self._pending_reset = handle

    def _return_to_idle(self, attempt: int) -> None:
        with self._state_lock:
            if self._attempt != attempt or self._state == VerificationState.SCANNING:
                return
            self._pending_reset = None
            self._state = VerificationState.IDLE
            self._last_outcome = None

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise _Cancelled()

    @staticmethod
    def _failure(
        reason: FailureReason,
        message: str,
        mode: Optional[BackendMode] = None,
        decisions: Optional[List[Tuple[str, ConsensusDecision]]] = None,
        confidence: float = 0.0,
    ) -> VerificationOutcome:
        return VerificationOutcome(
            success=False,
            message=message,
            confidence=confidence,
            failure_reason=reason,
            mode=mode,
            decisions=tuple(decisions or ()),
        )

    def _scan(self, probe: str) -> VerificationOutcome:
        staff = self.store.list_staff()
        if not staff:
            logger.info('Verification failed: no staff enrolled')
            return self._failure(FailureReason.NO_STAFF, NO_STAFF_MESSAGE)

        backend = self.selector.current()
        logger.info(f'Verifying probe against {len(staff)} staff ({backend.mode.value} mode)')

        if backend.mode == BackendMode.INDEXED:
            return self._scan_indexed(probe, staff, backend)
        return self._scan_pairwise(probe, staff, backend)

    def _references(self, candidate: StaffRecord) -> List[str]:
        images = self.store.get_staff_images(candidate.id)
        if images:
            return [img.image for img in images]
        # Legacy single-photo enrollment
        return [candidate.reference_image] if candidate.reference_image else []

    def _scan_pairwise(
        self,
        probe: str,
        staff: List[StaffRecord],
        backend: RecognitionBackend,
    ) -> VerificationOutcome:
        decisions: List[Tuple[str, ConsensusDecision]] = []
        unavailable = 0

        for candidate in staff:
            self._check_cancelled()
            references = self._references(candidate)
            if not references:
                logger.warning(f'Staff {candidate.id} has no reference photos, skipped')
                continue

            results = []
            for reference in references:
                self._check_cancelled()
                results.append(backend.compare_images(probe, reference))

            decision = pairwise_consensus(results, self.confidence_threshold, self.required_matches)
            decisions.append((candidate.id, decision))
            logger.debug(f'Candidate {candidate.id}: {decision.explanation}')

            if decision.credentials_missing:
                return self._failure(
                    FailureReason.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE,
                    BackendMode.PAIRWISE, decisions,
                )
            if decision.unavailable:
                unavailable += 1
                continue
            if decision.is_match:
                return self._accept(candidate, decision, BackendMode.PAIRWISE, decisions)

        if decisions and unavailable == len(decisions):
            return self._failure(
                FailureReason.UNAVAILABLE, UNAVAILABLE_MESSAGE, BackendMode.PAIRWISE, decisions,
            )

        message = NOT_RECOGNIZED_MESSAGE
        if unavailable:
            message += f' ({unavailable} candidate(s) could not be checked: service unavailable)'
        best = max((d.confidence for _, d in decisions if not d.unavailable), default=0.0)
        return self._failure(
            FailureReason.NOT_RECOGNIZED, message, BackendMode.PAIRWISE, decisions, best,
        )

    def _scan_indexed(
        self,
        probe: str,
        staff: List[StaffRecord],
        backend: RecognitionBackend,
    ) -> VerificationOutcome:
        self._check_cancelled()
        decision = indexed_consensus(
            backend.search_candidate(probe), self.indexed_fallback_threshold
        )
        decisions = [(decision.staff_id or decision.candidate_token or '', decision)]

        if decision.unavailable:
            if decision.credentials_missing:
                return self._failure(
                    FailureReason.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE, BackendMode.INDEXED, decisions,
                )
            return self._failure(
                FailureReason.UNAVAILABLE, UNAVAILABLE_MESSAGE, BackendMode.INDEXED, decisions,
            )

        if decision.is_match:
            matched = next(
                (
                    s for s in staff
                    if (decision.candidate_token and s.recognition_token == decision.candidate_token)
                    or (decision.staff_id and s.id == decision.staff_id)
                ),
                None,
            )
            if matched is not None:
                return self._accept(matched, decision, BackendMode.INDEXED, decisions)
            logger.warning(
                f'Search hit {decision.candidate_token} is not linked to any enrolled staff'
            )

        return self._failure(
            FailureReason.NOT_RECOGNIZED, NOT_RECOGNIZED_MESSAGE,
            BackendMode.INDEXED, decisions, decision.confidence,
        )

    def _accept(
        self,
        candidate: StaffRecord,
        decision: ConsensusDecision,
        mode: BackendMode,
        decisions: List[Tuple[str, ConsensusDecision]],
    ) -> VerificationOutcome:
        self._check_cancelled()

        event = self.recorder.record(
            candidate.id,
            candidate.full_name,
            candidate.assigned_unit,
            decision.confidence,
        )
        logger.info(f'✅ {candidate.full_name} ({candidate.id}) checked in: {decision.explanation}')

        return VerificationOutcome(
            success=True,
            message=f'Match: {event.confidence_score:.1f}% confidence ({decision.explanation})',
            confidence=event.confidence_score,
            staff=candidate,
            check_in=event,
            mode=mode,
            decisions=tuple(decisions),
        )
