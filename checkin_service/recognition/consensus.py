"""
Consensus decision module.

Turns oracle results for one candidate into a single match/no-match decision.

Pairwise mode:
    A result qualifies when match=True and confidence >= threshold. The
    candidate matches when at least `required_matches` results qualify.
    Reported confidence is the mean of the qualifying results, or the mean of
    all answered comparisons when none qualify (diagnostic score).

Indexed mode:
    The top-ranked search hit matches when its confidence reaches the
    strictest operating point the oracle offered (lowest false-accept rate).

Oracle failures never count towards a match.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .backends import CompareResult, OracleFailure, PairwiseComparison, SearchResult

FALLBACK_THRESHOLD_NAME = 'fallback'


@dataclass(frozen=True)
class ConsensusDecision:
    """
    Decision for one candidate.

    Attributes:
        is_match: Candidate accepted
        confidence: Aggregate confidence (0-100)
        match_count: Qualifying results
        total: Results considered (including failed comparisons)
        required_matches: Qualifying results needed to accept
        explanation: Human-readable summary, always includes match_count/total
        unavailable: No oracle answer was obtained at all
        credentials_missing: Oracle was not configured
        candidate_token: Indexed mode, token of the top hit
        staff_id: Indexed mode, staff id tagged on the top hit
    """

    is_match: bool
    confidence: float
    match_count: int
    total: int
    required_matches: int
    explanation: str
    unavailable: bool = False
    credentials_missing: bool = False
    candidate_token: Optional[str] = None
    staff_id: Optional[str] = None


def default_required_matches(reference_count: int) -> int:
    """Two matches when three or more references exist, otherwise one."""
    return 2 if reference_count >= 3 else 1


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def _unavailable(failures: Sequence[OracleFailure], total: int, required: int) -> ConsensusDecision:
    missing = any(f.credentials_missing for f in failures)
    if missing:
        explanation = f'Recognition service not configured (0/{total} references compared)'
    else:
        explanation = f'Recognition service unavailable (0/{total} references compared)'
    return ConsensusDecision(
        is_match=False,
        confidence=0.0,
        match_count=0,
        total=total,
        required_matches=required,
        explanation=explanation,
        unavailable=True,
        credentials_missing=missing,
    )


def pairwise_consensus(
    results: Sequence[CompareResult],
    confidence_threshold: float,
    required_matches: Optional[int] = None,
) -> ConsensusDecision:
    """
    Decide a candidate from per-reference comparison results.

    Args:
        results: One result per reference photo, in reference order
        confidence_threshold: Minimum confidence for a result to qualify
        required_matches: Qualifying results needed, None = default policy.
            An explicit value is applied as given, even above the number
            of references.

    Returns:
        ConsensusDecision
    """
    total = len(results)
    if required_matches is None:
        required = default_required_matches(total)
    else:
        required = max(1, required_matches)

    if total == 0:
        return ConsensusDecision(
            is_match=False,
            confidence=0.0,
            match_count=0,
            total=0,
            required_matches=required,
            explanation='0/0 references matched (no reference photos)',
        )

    comparisons = [r for r in results if isinstance(r, PairwiseComparison)]
    failures = [r for r in results if isinstance(r, OracleFailure)]

    if not comparisons:
        return _unavailable(failures, total, required)

    qualifying = [
        c for c in comparisons
        if c.match and c.confidence >= confidence_threshold
    ]
    match_count = len(qualifying)
    is_match = match_count >= required

    if qualifying:
        confidence = _mean([c.confidence for c in qualifying])
    else:
        confidence = _mean([c.confidence for c in comparisons])

    explanation = (
        f'{match_count}/{total} references matched '
        f'(required {required}, threshold {confidence_threshold:g})'
    )
    if failures:
        explanation += f'; {len(failures)} comparison(s) unavailable'

    return ConsensusDecision(
        is_match=is_match,
        confidence=confidence,
        match_count=match_count,
        total=total,
        required_matches=required,
        explanation=explanation,
    )


def strictest_threshold(
    thresholds: Dict[str, float],
    fallback: float,
) -> Tuple[str, float]:
    """
    Pick the operating point with the lowest false-accept rate.

    Threshold names are false-accept rates ('1e-3', '1e-4', '1e-5'). Names
    that do not parse as numbers are ignored.

    Returns:
        (name, threshold), or ('fallback', fallback) when none are usable
    """
    best: Optional[Tuple[float, str, float]] = None
    for name, value in thresholds.items():
        try:
            rate = float(name)
        except ValueError:
            continue
        if best is None or rate < best[0]:
            best = (rate, name, value)

    if best is None:
        return FALLBACK_THRESHOLD_NAME, fallback
    return best[1], best[2]


def indexed_consensus(result: SearchResult, fallback_threshold: float) -> ConsensusDecision:
    """
    Decide from an indexed search using its top-ranked hit.

    Args:
        result: Normalized search result or failure
        fallback_threshold: Used when the oracle returned no thresholds

    Returns:
        ConsensusDecision carrying the hit's token and staff id
    """
    if isinstance(result, OracleFailure):
        return _unavailable([result], 1, 1)

    top = result.top_hit
    if top is None:
        return ConsensusDecision(
            is_match=False,
            confidence=0.0,
            match_count=0,
            total=0,
            required_matches=1,
            explanation='0/0 search hits matched (no faces returned)',
        )

    name, threshold = strictest_threshold(result.thresholds, fallback_threshold)
    is_match = top.confidence >= threshold

    return ConsensusDecision(
        is_match=is_match,
        confidence=top.confidence,
        match_count=1 if is_match else 0,
        total=1,
        required_matches=1,
        explanation=(
            f'{1 if is_match else 0}/1 top search hit matched: '
            f'{top.confidence:.1f}% vs {name} threshold {threshold:.1f}'
        ),
        candidate_token=top.candidate_token,
        staff_id=top.staff_id,
    )
