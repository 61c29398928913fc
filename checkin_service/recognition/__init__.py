"""
Recognition package.

Contains modules for:
- Oracle clients (generative comparison/quality, indexed search)
- Backend abstraction over both oracle families
- Photo quality gate
- Consensus decisions
"""

from .backends import (
    BackendMode,
    BackendSelector,
    IndexedBackend,
    IndexedSearch,
    OracleFailure,
    PairwiseBackend,
    PairwiseComparison,
    RecognitionBackend,
    SearchHit,
)
from .consensus import (
    ConsensusDecision,
    default_required_matches,
    indexed_consensus,
    pairwise_consensus,
    strictest_threshold,
)
from .facepp import FacePPClient
from .gemini import GeminiClient
from .quality import QualityGate, QualityVerdict

__all__ = [
    'BackendMode',
    'BackendSelector',
    'IndexedBackend',
    'IndexedSearch',
    'OracleFailure',
    'PairwiseBackend',
    'PairwiseComparison',
    'RecognitionBackend',
    'SearchHit',
    'ConsensusDecision',
    'default_required_matches',
    'indexed_consensus',
    'pairwise_consensus',
    'strictest_threshold',
    'FacePPClient',
    'GeminiClient',
    'QualityGate',
    'QualityVerdict',
]
