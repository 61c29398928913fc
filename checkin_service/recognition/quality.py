"""
Photo quality gate.

Validates a single enrollment capture with the generative oracle.

The gate fails open: if the oracle cannot be reached or its answer cannot be
read, the photo is accepted with a reason flagging that the check was
skipped. Enrollment is never blocked by an oracle outage.
"""

from dataclasses import dataclass

from ..errors import CredentialMissing, OracleUnavailable
from ..logging_config import get_logger
from .gemini import GeminiClient

logger = get_logger(__name__)

SKIPPED_UNAVAILABLE = 'AI Check Skipped (Network/API Error)'
SKIPPED_NO_CREDENTIALS = 'AI Check Skipped (API key not configured)'


@dataclass(frozen=True)
class QualityVerdict:
    """
    Outcome of one quality check.

    Attributes:
        valid: Photo may be used for enrollment
        reason: Oracle explanation, or the skip notice
        skipped: True when the oracle was not consulted successfully
    """

    valid: bool
    reason: str
    skipped: bool = False


class QualityGate:
    """Per-photo quality check with fail-open policy."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def check_photo(self, image: str) -> QualityVerdict:
        """
        Check whether a photo shows exactly one clear, well-lit face.

        Args:
            image: Captured photo (base64 or data URL)

        Returns:
            QualityVerdict, never raises for oracle problems
        """
        try:
            result = self.client.check_quality(image)
        except CredentialMissing as e:
            logger.warning(f'Quality check skipped, no credentials: {e}')
            return QualityVerdict(valid=True, reason=SKIPPED_NO_CREDENTIALS, skipped=True)
        except OracleUnavailable as e:
            logger.warning(f'Quality check skipped, oracle unavailable: {e}')
            return QualityVerdict(valid=True, reason=SKIPPED_UNAVAILABLE, skipped=True)
        except Exception as e:
            logger.error(f'Quality check skipped, unexpected oracle error: {e}', exc_info=True)
            return QualityVerdict(valid=True, reason=SKIPPED_UNAVAILABLE, skipped=True)

        if not result['valid']:
            logger.info(f"Photo rejected by quality check: {result['reason']}")

        return QualityVerdict(valid=result['valid'], reason=result['reason'])
