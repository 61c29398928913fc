"""
Indexed-search oracle client.

Wraps the Face++ v3 REST API:
- faceset lifecycle (create, detail)
- face detection (photo -> face_token)
- adding/removing faces to/from the faceset and tagging them with a staff id
- searching a probe photo against the faceset

Every call is a form POST carrying api_key/api_secret. Transport failures and
`error_message` payloads raise OracleUnavailable.
"""

from typing import Any, Dict, Optional

import requests

from ..errors import CredentialMissing, OracleUnavailable
from ..logging_config import get_logger
from ..settings import FACEPP_FACESET_TOKEN, FacePPCredentials, SettingsService
from ..utils.images import strip_data_url

logger = get_logger(__name__)

ORACLE_NAME = 'Face++'


class FacePPClient:
    """
    REST client for the indexed-search oracle.

    Args:
        settings: Settings service providing key, secret and faceset token
        api_url: Base API URL, e.g. https://api-us.faceplusplus.com/facepp/v3
        timeout: Per-request timeout in seconds
        result_count: Number of ranked hits requested per search
    """

    def __init__(
        self,
        settings: SettingsService,
        api_url: str,
        timeout: float = 20.0,
        result_count: int = 5,
    ):
        self.settings = settings
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.result_count = result_count
        self.session = requests.Session()

    def _faceset_credentials(self) -> FacePPCredentials:
        credentials = self.settings.facepp_credentials()
        if not credentials.faceset_token:
            raise CredentialMissing(ORACLE_NAME, 'FaceSet not initialized')
        return credentials

    def _post(
        self,
        endpoint: str,
        credentials: FacePPCredentials,
        fields: Dict[str, str],
    ) -> Dict[str, Any]:
        data = {
            'api_key': credentials.api_key,
            'api_secret': credentials.api_secret,
        }
        data.update(fields)

        url = f'{self.api_url}/{endpoint}'
        try:
            response = self.session.post(url, data=data, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise OracleUnavailable(ORACLE_NAME, f'{endpoint} timed out after {self.timeout}s') from e
        except requests.exceptions.RequestException as e:
            raise OracleUnavailable(ORACLE_NAME, f'{endpoint} network error: {e}') from e

        try:
            payload = response.json()
        except ValueError as e:
            raise OracleUnavailable(
                ORACLE_NAME, f'{endpoint} returned non-JSON (HTTP {response.status_code})'
            ) from e

        if not isinstance(payload, dict):
            raise OracleUnavailable(ORACLE_NAME, f'{endpoint} returned unexpected payload')

        if payload.get('error_message'):
            raise OracleUnavailable(ORACLE_NAME, f"{endpoint}: {payload['error_message']}")

        if not response.ok:
            raise OracleUnavailable(ORACLE_NAME, f'{endpoint}: HTTP {response.status_code}')

        return payload

    def create_faceset(self, display_name: str, outer_id: str) -> str:
        """
        Create a new faceset and store its token in settings.

        Returns:
            The new faceset token
        """
        credentials = self.settings.facepp_credentials()
        payload = self._post('faceset/create', credentials, {
            'display_name': display_name,
            'outer_id': outer_id,
        })

        token = payload.get('faceset_token')
        if not token:
            raise OracleUnavailable(ORACLE_NAME, 'faceset/create returned no token')

        self.settings.set(FACEPP_FACESET_TOKEN, token)
        logger.info(f'Created faceset {outer_id}')
        return token

    def faceset_face_count(self) -> int:
        credentials = self._faceset_credentials()
        payload = self._post('faceset/getdetail', credentials, {
            'faceset_token': credentials.faceset_token,
        })
        return int(payload.get('face_count') or 0)

    def detect_face(self, image: str) -> Optional[str]:
        """
        Detect the largest face in a photo.

        Returns:
            face_token, or None if no face was found
        """
        payload = self._post('detect', self.settings.facepp_credentials(), {
            'image_base64': strip_data_url(image),
        })
        faces = payload.get('faces') or []
        if not faces:
            return None
        return faces[0].get('face_token')

    def add_face(self, face_token: str, staff_id: str) -> None:
        """Add a detected face to the faceset and tag it with the staff id."""
        credentials = self._faceset_credentials()
        self._post('faceset/addface', credentials, {
            'faceset_token': credentials.faceset_token,
            'face_tokens': face_token,
        })
        self._post('face/setuserid', credentials, {
            'face_token': face_token,
            'user_id': staff_id,
        })

    def remove_face(self, face_token: str) -> None:
        credentials = self._faceset_credentials()
        self._post('faceset/removeface', credentials, {
            'faceset_token': credentials.faceset_token,
            'face_tokens': face_token,
        })

    def search(self, image: str) -> Dict[str, Any]:
        """
        Search a probe photo against the faceset.

        Returns:
            Raw payload with 'results' (list of face_token/confidence/user_id)
            and 'thresholds' (named operating points)
        """
        credentials = self._faceset_credentials()
        return self._post('search', credentials, {
            'faceset_token': credentials.faceset_token,
            'image_base64': strip_data_url(image),
            'return_result_count': str(self.result_count),
        })
