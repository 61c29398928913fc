"""
Recognition backend abstraction.

Gives the verification pipeline one interface over two oracle families:

- PairwiseBackend: one remote comparison per (probe, reference) pair
- IndexedBackend: one remote search of the probe against a pre-built faceset

Raw oracle payloads are normalized here into tagged result variants
(PairwiseComparison, IndexedSearch, OracleFailure). Oracle exceptions never
cross this boundary: transport, auth and missing-credential errors all come
back as OracleFailure. A StoreError raised while reading credentials is not an
oracle failure and propagates to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..errors import CredentialMissing, OracleUnavailable
from ..logging_config import get_logger
from ..settings import SettingsService
from .facepp import FacePPClient
from .gemini import GeminiClient

logger = get_logger(__name__)


class BackendMode(str, Enum):
    PAIRWISE = 'pairwise'
    INDEXED = 'indexed'


class ResultKind(str, Enum):
    PAIRWISE = 'pairwise'
    INDEXED = 'indexed'
    FAILURE = 'failure'


@dataclass(frozen=True)
class PairwiseComparison:
    """Result of comparing the probe with one reference photo."""

    match: bool
    confidence: float
    explanation: str = ''

    @property
    def kind(self) -> ResultKind:
        return ResultKind.PAIRWISE


@dataclass(frozen=True)
class SearchHit:
    """One ranked hit of an indexed search."""

    candidate_token: str
    confidence: float
    staff_id: Optional[str] = None


@dataclass(frozen=True)
class IndexedSearch:
    """
    Ranked hits plus the oracle's named operating-point thresholds.

    Threshold keys are false-accept rates, e.g. {'1e-3': 62.3, '1e-5': 73.9}.
    """

    hits: Tuple[SearchHit, ...] = ()
    thresholds: Dict[str, float] = field(default_factory=dict)

    @property
    def kind(self) -> ResultKind:
        return ResultKind.INDEXED

    @property
    def top_hit(self) -> Optional[SearchHit]:
        return self.hits[0] if self.hits else None


@dataclass(frozen=True)
class OracleFailure:
    """The oracle could not answer. Never treated as a match."""

    oracle: str
    reason: str
    credentials_missing: bool = False

    @property
    def kind(self) -> ResultKind:
        return ResultKind.FAILURE


CompareResult = Union[PairwiseComparison, OracleFailure]
SearchResult = Union[IndexedSearch, OracleFailure]


def normalize_search(payload: Dict[str, Any]) -> IndexedSearch:
    """
    Convert a raw search payload into an IndexedSearch.

    Hits are kept in the oracle's ranking order. Thresholds that are not
    numeric are dropped.
    """
    hits = []
    for row in payload.get('results') or []:
        token = row.get('face_token')
        if not token:
            continue
        hits.append(SearchHit(
            candidate_token=token,
            confidence=float(row.get('confidence') or 0.0),
            staff_id=row.get('user_id') or None,
        ))

    thresholds: Dict[str, float] = {}
    for name, value in (payload.get('thresholds') or {}).items():
        try:
            thresholds[str(name)] = float(value)
        except (TypeError, ValueError):
            logger.warning(f'Ignoring non-numeric threshold {name}={value!r}')

    return IndexedSearch(hits=tuple(hits), thresholds=thresholds)


class RecognitionBackend:
    """Capability interface shared by both oracle families."""

    mode: BackendMode

    def compare_images(self, probe: str, reference: str) -> CompareResult:
        raise NotImplementedError(f'{self.__class__.__name__} does not compare image pairs')

    def search_candidate(self, probe: str) -> SearchResult:
        raise NotImplementedError(f'{self.__class__.__name__} does not support indexed search')


class PairwiseBackend(RecognitionBackend):
    """Every comparison is one generative-oracle call. No pre-filtering."""

    mode = BackendMode.PAIRWISE

    def __init__(self, client: GeminiClient):
        self.client = client

    def compare_images(self, probe: str, reference: str) -> CompareResult:
        try:
            raw = self.client.compare_faces(probe, reference)
        except CredentialMissing as e:
            logger.error(f'Pairwise comparison skipped: {e}')
            return OracleFailure(oracle=e.oracle, reason=str(e), credentials_missing=True)
        except OracleUnavailable as e:
            logger.error(f'Pairwise comparison failed: {e}')
            return OracleFailure(oracle=e.oracle, reason=e.message)

        return PairwiseComparison(
            match=raw['match'],
            confidence=raw['confidence'],
            explanation=raw['explanation'],
        )


class IndexedBackend(RecognitionBackend):
    """One search call ranks the probe against the whole faceset."""

    mode = BackendMode.INDEXED

    def __init__(self, client: FacePPClient):
        self.client = client

    def search_candidate(self, probe: str) -> SearchResult:
        try:
            payload = self.client.search(probe)
        except CredentialMissing as e:
            logger.error(f'Indexed search skipped: {e}')
            return OracleFailure(oracle=e.oracle, reason=str(e), credentials_missing=True)
        except OracleUnavailable as e:
            logger.error(f'Indexed search failed: {e}')
            return OracleFailure(oracle=e.oracle, reason=e.message)

        return normalize_search(payload)


class BackendSelector:
    """
    Chooses the backend for each verification.

    The indexed backend is used whenever a faceset token is configured,
    otherwise verification falls back to pairwise comparison. Selection is
    re-evaluated on every call so settings changes take effect immediately.
    """

    def __init__(
        self,
        settings: SettingsService,
        pairwise: RecognitionBackend,
        indexed: RecognitionBackend,
    ):
        self.settings = settings
        self.pairwise = pairwise
        self.indexed = indexed

    def current(self) -> RecognitionBackend:
        if self.settings.has_faceset():
            return self.indexed
        return self.pairwise
