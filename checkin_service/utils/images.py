"""
Photo encoding helpers.

Photos travel through the service as base64 strings, optionally wrapped in a
data URL (``data:image/jpeg;base64,...``) as produced by browser cameras.
"""

import base64
import binascii
import re

from ..errors import ValidationError

_DATA_URL_PREFIX = re.compile(r'^data:image/\w+;base64,', re.IGNORECASE)


def strip_data_url(image: str) -> str:
    """Remove a data URL prefix if present."""
    return _DATA_URL_PREFIX.sub('', image.strip())


def require_photo(image: str) -> str:
    """
    Validate a captured photo and return its bare base64 payload.

    Raises:
        ValidationError: If the photo is empty or not valid base64
    """
    if not image or not image.strip():
        raise ValidationError('Photo is empty')

    payload = strip_data_url(image)
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f'Photo is not valid base64: {e}') from e

    return payload
