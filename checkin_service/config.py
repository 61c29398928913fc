"""
Configuration module for Check-in Service.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization. Runtime-changeable values
(oracle credentials, faceset token) live in the Settings store instead,
see settings.py.
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for Check-in Service.

    Record Store:
        store_url: Base URL of the REST record store (empty = in-memory store)
        store_api_key: API key sent to the record store

    Oracles:
        gemini_api_url: Base URL of the generative oracle REST API
        gemini_model: Model name used for compare/quality/insight requests
        gemini_api_key: Fallback API key when the Settings store has none
        facepp_api_url: Base URL of the indexed-search oracle
        oracle_timeout_seconds: Per-call timeout for every oracle request
        search_result_count: Number of ranked hits requested per search

    Enrollment:
        staff_id_prefix: Prefix for allocated staff identifiers
        capture_angles: Ordered photo angles required at enrollment
        auto_advance_seconds: Delay before moving to the next angle

    Verification:
        confidence_threshold: Minimum pairwise confidence (0-100) to qualify
        required_matches: Qualifying references required (None = default policy)
        indexed_fallback_threshold: Used when the oracle returns no thresholds
        result_display_seconds: How long a result stays before returning to Idle

    Service:
        kiosk_id: Logical identifier for this kiosk (for logging)
        http_port: Port for Flask HTTP server
        debug_mode: Enable debug logging
    """

    # Record store
    store_url: str
    store_api_key: str

    # Oracles
    gemini_api_url: str
    gemini_model: str
    gemini_api_key: str
    facepp_api_url: str
    oracle_timeout_seconds: float
    search_result_count: int

    # Enrollment
    staff_id_prefix: str
    capture_angles: Tuple[str, ...]
    auto_advance_seconds: float

    # Verification
    confidence_threshold: float
    required_matches: Optional[int]
    indexed_fallback_threshold: float
    result_display_seconds: float

    # Service
    kiosk_id: str
    http_port: int
    debug_mode: bool


def _parse_angles(raw: str) -> Tuple[str, ...]:
    angles = tuple(a.strip().lower() for a in raw.split(',') if a.strip())
    if not angles:
        raise ValueError('CAPTURE_ANGLES must name at least one angle')
    if len(set(angles)) != len(angles):
        raise ValueError(f'CAPTURE_ANGLES contains duplicates: {raw}')
    return angles


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object
    """
    required_raw = os.getenv('REQUIRED_MATCHES', '').strip()

    return Config(
        # Record store
        store_url=os.getenv('STORE_URL', ''),
        store_api_key=os.getenv('STORE_API_KEY', ''),

        # Oracles
        gemini_api_url=os.getenv(
            'GEMINI_API_URL', 'https://generativelanguage.googleapis.com/v1beta'
        ),
        gemini_model=os.getenv('GEMINI_MODEL', 'gemini-2.5-flash'),
        gemini_api_key=os.getenv('API_KEY', ''),
        facepp_api_url=os.getenv(
            'FACEPP_API_URL', 'https://api-us.faceplusplus.com/facepp/v3'
        ),
        oracle_timeout_seconds=float(os.getenv('ORACLE_TIMEOUT', '20.0')),
        search_result_count=int(os.getenv('SEARCH_RESULT_COUNT', '5')),

        # Enrollment
        staff_id_prefix=os.getenv('STAFF_ID_PREFIX', 'FG'),
        capture_angles=_parse_angles(os.getenv('CAPTURE_ANGLES', 'front,left,right')),
        auto_advance_seconds=float(os.getenv('AUTO_ADVANCE_DELAY', '1.0')),

        # Verification
        confidence_threshold=float(os.getenv('CONFIDENCE_THRESHOLD', '85.0')),
        required_matches=int(required_raw) if required_raw else None,
        indexed_fallback_threshold=float(os.getenv('INDEXED_FALLBACK_THRESHOLD', '65.0')),
        result_display_seconds=float(os.getenv('RESULT_DISPLAY_SECONDS', '5.0')),

        # Service
        kiosk_id=os.getenv('KIOSK_ID', 'kiosk'),
        http_port=int(os.getenv('HTTP_PORT', '5001')),
        debug_mode=os.getenv('DEBUG', 'false').lower() == 'true',
    )
