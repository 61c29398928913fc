"""
Service wiring.

Builds every component from a Config and exposes the admin operations that
span several of them (export, clear).
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .checkins import CheckInRecorder
from .config import Config
from .enrollment import EnrollmentService
from .logging_config import get_logger
from .models import now_ms
from .recognition.backends import BackendSelector, IndexedBackend, PairwiseBackend
from .recognition.facepp import FacePPClient
from .recognition.gemini import GeminiClient
from .recognition.quality import QualityGate
from .settings import SettingsService
from .store import RecordStore, create_store
from .utils.timing import Scheduler, timer_scheduler
from .verification import VerificationOrchestrator

logger = get_logger(__name__)


@dataclass
class Services:
    config: Config
    store: RecordStore
    settings: SettingsService
    gemini: GeminiClient
    facepp: FacePPClient
    gate: QualityGate
    selector: BackendSelector
    enrollment: EnrollmentService
    recorder: CheckInRecorder
    verifier: VerificationOrchestrator
    started_at: float

    def export_snapshot(self) -> Dict[str, Any]:
        """JSON-serialisable backup of all staff and check-ins."""
        return {
            'timestamp': now_ms(),
            'staff': [s.to_row() for s in self.store.list_staff()],
            'checkIns': [e.to_row() | {'id': e.id} for e in self.store.all_check_ins()],
        }

    def clear_all_data(self) -> None:
        """Delete every check-in, image and staff record."""
        self.store.clear_all()
        logger.warning('All staff and check-in data cleared')


def build_services(
    config: Config,
    store: Optional[RecordStore] = None,
    scheduler: Scheduler = timer_scheduler,
) -> Services:
    """
    Create all components.

    Args:
        config: Service configuration
        store: Record store to use instead of the configured one
        scheduler: Scheduler for capture auto-advance and result display

    Returns:
        Wired Services container
    """
    store = store if store is not None else create_store(config)
    settings = SettingsService(store, fallback_gemini_key=config.gemini_api_key)

    gemini = GeminiClient(
        settings,
        config.gemini_api_url,
        config.gemini_model,
        timeout=config.oracle_timeout_seconds,
    )
    facepp = FacePPClient(
        settings,
        config.facepp_api_url,
        timeout=config.oracle_timeout_seconds,
        result_count=config.search_result_count,
    )

    gate = QualityGate(gemini)
    selector = BackendSelector(settings, PairwiseBackend(gemini), IndexedBackend(facepp))
    recorder = CheckInRecorder(store)

    enrollment = EnrollmentService(
        store,
        gate,
        settings=settings,
        facepp=facepp,
        angles=config.capture_angles,
        id_prefix=config.staff_id_prefix,
        auto_advance_seconds=config.auto_advance_seconds,
        scheduler=scheduler,
    )
    verifier = VerificationOrchestrator(
        store,
        selector,
        recorder,
        confidence_threshold=config.confidence_threshold,
        required_matches=config.required_matches,
        indexed_fallback_threshold=config.indexed_fallback_threshold,
        display_seconds=config.result_display_seconds,
        scheduler=scheduler,
    )

    return Services(
        config=config,
        store=store,
        settings=settings,
        gemini=gemini,
        facepp=facepp,
        gate=gate,
        selector=selector,
        enrollment=enrollment,
        recorder=recorder,
        verifier=verifier,
        started_at=time.time(),
    )
