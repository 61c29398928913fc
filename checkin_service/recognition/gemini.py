"""
Generative oracle client.

Talks to the Gemini REST API (generateContent) for:
- photo quality checks (one face, clearly visible, well lit)
- pairwise identity comparison of two photos
- short free-text staff insights

Transport, auth and parse failures raise OracleUnavailable; a missing API key
raises CredentialMissing before any request is sent.
"""

import json
import re
from typing import Any, Dict, List, Optional

import requests

from ..errors import OracleUnavailable
from ..logging_config import get_logger
from ..settings import SettingsService
from ..utils.images import strip_data_url

logger = get_logger(__name__)

ORACLE_NAME = 'Gemini'

QUALITY_PROMPT = (
    'Analyze this image for use in a staff ID system. Is there exactly one human face? '
    'Is it clearly visible and well-lit? Respond with JSON.'
)

COMPARE_PROMPT = (
    'Compare these two images. Do they appear to be the same person? '
    'Ignore minor differences in lighting or accessories. '
    'Provide a confidence score from 0 to 100.'
)

QUALITY_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'valid': {
            'type': 'BOOLEAN',
            'description': 'True if the image is a clear, single face suitable for ID.',
        },
        'reason': {
            'type': 'STRING',
            'description': 'Short explanation of the quality check result.',
        },
    },
    'required': ['valid', 'reason'],
}

COMPARE_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'match': {'type': 'BOOLEAN'},
        'confidence': {'type': 'NUMBER'},
        'explanation': {'type': 'STRING'},
    },
    'required': ['match', 'confidence', 'explanation'],
}

_CODE_FENCE = re.compile(r'```json|```')


def parse_json_text(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object from model output.

    Strips markdown code fences the model sometimes wraps around JSON.

    Returns:
        Parsed dict, or None if the text is empty or not a JSON object
    """
    if not text:
        return None
    try:
        value = json.loads(_CODE_FENCE.sub('', text).strip())
    except ValueError:
        logger.error(f'Failed to parse JSON from oracle: {text[:200]}')
        return None
    return value if isinstance(value, dict) else None


def _image_part(image: str) -> Dict[str, Any]:
    return {'inline_data': {'mime_type': 'image/jpeg', 'data': strip_data_url(image)}}


class GeminiClient:
    """
    Minimal REST client for the generative oracle.

    Args:
        settings: Settings service providing the API key
        api_url: Base API URL (without model path)
        model: Model name
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        settings: SettingsService,
        api_url: str,
        model: str,
        timeout: float = 20.0,
    ):
        self.settings = settings
        self.api_url = api_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()

    def generate(
        self,
        parts: List[Dict[str, Any]],
        schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Run one generateContent request and return the text of the first candidate.

        Raises:
            CredentialMissing: If no API key is configured
            OracleUnavailable: On transport, HTTP or payload errors
        """
        credentials = self.settings.gemini_credentials()

        body: Dict[str, Any] = {'contents': [{'parts': parts}]}
        if schema is not None:
            body['generationConfig'] = {
                'responseMimeType': 'application/json',
                'responseSchema': schema,
            }

        url = f'{self.api_url}/models/{self.model}:generateContent'
        try:
            response = self.session.post(
                url,
                json=body,
                headers={'x-goog-api-key': credentials.api_key},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise OracleUnavailable(ORACLE_NAME, f'request timed out after {self.timeout}s') from e
        except requests.exceptions.RequestException as e:
            raise OracleUnavailable(ORACLE_NAME, f'network error: {e}') from e

        if not response.ok:
            raise OracleUnavailable(ORACLE_NAME, f'HTTP {response.status_code}: {response.text[:200]}')

        try:
            payload = response.json()
            return payload['candidates'][0]['content']['parts'][0]['text']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OracleUnavailable(ORACLE_NAME, 'malformed response') from e

    def check_quality(self, image: str) -> Dict[str, Any]:
        """
        Ask the oracle whether a photo is usable for enrollment.

        Returns:
            Dict with 'valid' (bool) and 'reason' (str)

        Raises:
            CredentialMissing, OracleUnavailable
        """
        text = self.generate([_image_part(image), {'text': QUALITY_PROMPT}], QUALITY_SCHEMA)
        result = parse_json_text(text)
        if result is None or 'valid' not in result:
            raise OracleUnavailable(ORACLE_NAME, 'unparsable quality response')

        return {
            'valid': bool(result['valid']),
            'reason': str(result.get('reason', '')),
        }

    def compare_faces(self, probe: str, reference: str) -> Dict[str, Any]:
        """
        Ask the oracle whether two photos show the same person.

        Args:
            probe: Live capture
            reference: Stored enrollment photo

        Returns:
            Dict with 'match' (bool), 'confidence' (0-100) and 'explanation'

        Raises:
            CredentialMissing, OracleUnavailable
        """
        text = self.generate(
            [_image_part(reference), _image_part(probe), {'text': COMPARE_PROMPT}],
            COMPARE_SCHEMA,
        )
        result = parse_json_text(text)
        if result is None or 'match' not in result:
            raise OracleUnavailable(ORACLE_NAME, 'unparsable comparison response')

        try:
            confidence = float(result.get('confidence', 0))
        except (TypeError, ValueError):
            confidence = 0.0

        return {
            'match': bool(result['match']),
            'confidence': min(max(confidence, 0.0), 100.0),
            'explanation': str(result.get('explanation', '')),
        }

    def generate_text(self, prompt: str) -> str:
        """Free-text generation. Raises CredentialMissing, OracleUnavailable."""
        return self.generate([{'text': prompt}])
