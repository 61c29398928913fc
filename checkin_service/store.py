"""
Staff Record Store.

Persists staff records, angle-tagged enrollment photos, check-in events and
key/value settings. Two implementations share one contract:

- InMemoryRecordStore: process-local, used for kiosks without a backend and in tests
- RestRecordStore: PostgREST-compatible HTTP backend (tables staff,
  staff_images, check_ins, settings)

Every failure surfaces as StoreError.
"""

import threading
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import StoreError
from .logging_config import get_logger
from .models import CheckInEvent, StaffImage, StaffRecord, now_ms

logger = get_logger(__name__)


class RecordStore:
    """Contract for record store implementations."""

    # --- Staff ---

    def add_staff(self, record: StaffRecord) -> None:
        raise NotImplementedError

    def list_staff(self) -> List[StaffRecord]:
        """Return all staff, most recently registered first."""
        raise NotImplementedError

    def get_staff(self, staff_id: str) -> Optional[StaffRecord]:
        raise NotImplementedError

    def delete_staff(self, staff_id: str) -> None:
        raise NotImplementedError

    def update_staff_recognition_token(self, staff_id: str, token: str) -> None:
        raise NotImplementedError

    def list_staff_ids(self) -> List[str]:
        return [s.id for s in self.list_staff()]

    # --- Staff images ---

    def add_staff_images(self, staff_id: str, images: List[StaffImage]) -> None:
        raise NotImplementedError

    def get_staff_images(self, staff_id: str) -> List[StaffImage]:
        """Return a staff member's images in capture order."""
        raise NotImplementedError

    def delete_staff_images(self, staff_id: str) -> None:
        raise NotImplementedError

    # --- Check-ins ---

    def add_check_in(self, event: CheckInEvent) -> CheckInEvent:
        raise NotImplementedError

    def recent_check_ins(self, limit: int = 50) -> List[CheckInEvent]:
        """Return check-ins newest first, at most `limit` of them."""
        raise NotImplementedError

    def all_check_ins(self) -> List[CheckInEvent]:
        raise NotImplementedError

    def clear_all(self) -> None:
        raise NotImplementedError

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_setting(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete_setting(self, key: str) -> None:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    """
    Thread-safe in-process store.

    Data is lost when the process exits.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._staff: Dict[str, StaffRecord] = {}
        self._images: Dict[str, List[StaffImage]] = {}
        self._check_ins: List[CheckInEvent] = []
        self._settings: Dict[str, str] = {}
        self._next_check_in_id = 1
        self._next_image_id = 1

    def add_staff(self, record: StaffRecord) -> None:
        with self._lock:
            if record.id in self._staff:
                raise StoreError(f'Error adding staff: duplicate id {record.id}')
            self._staff[record.id] = record

    def list_staff(self) -> List[StaffRecord]:
        with self._lock:
            return sorted(
                self._staff.values(), key=lambda s: s.registered_at, reverse=True
            )

    def get_staff(self, staff_id: str) -> Optional[StaffRecord]:
        with self._lock:
            return self._staff.get(staff_id)

    def delete_staff(self, staff_id: str) -> None:
        with self._lock:
            self._staff.pop(staff_id, None)

    def update_staff_recognition_token(self, staff_id: str, token: str) -> None:
        with self._lock:
            record = self._staff.get(staff_id)
            if record is None:
                raise StoreError(f'Error updating face token: unknown staff {staff_id}')
            record.recognition_token = token

    def add_staff_images(self, staff_id: str, images: List[StaffImage]) -> None:
        with self._lock:
            stored = self._images.setdefault(staff_id, [])
            for image in images:
                stored.append(StaffImage(
                    id=self._next_image_id,
                    staff_id=staff_id,
                    angle=image.angle,
                    image=image.image,
                    created_at=now_ms(),
                ))
                self._next_image_id += 1

    def get_staff_images(self, staff_id: str) -> List[StaffImage]:
        with self._lock:
            return list(self._images.get(staff_id, []))

    def delete_staff_images(self, staff_id: str) -> None:
        with self._lock:
            self._images.pop(staff_id, None)

    def add_check_in(self, event: CheckInEvent) -> CheckInEvent:
        with self._lock:
            stored = CheckInEvent(
                id=self._next_check_in_id,
                staff_id=event.staff_id,
                staff_name=event.staff_name,
                assigned_unit=event.assigned_unit,
                timestamp=event.timestamp,
                confidence_score=event.confidence_score,
            )
            self._next_check_in_id += 1
            self._check_ins.append(stored)
            return stored

    def recent_check_ins(self, limit: int = 50) -> List[CheckInEvent]:
        return self.all_check_ins()[:max(limit, 0)]

    def all_check_ins(self) -> List[CheckInEvent]:
        with self._lock:
            return sorted(
                self._check_ins, key=lambda e: (e.timestamp, e.id), reverse=True
            )

    def clear_all(self) -> None:
        with self._lock:
            self._check_ins.clear()
            self._images.clear()
            self._staff.clear()

    def get_setting(self, key: str) -> Optional[str]:
        with self._lock:
            return self._settings.get(key)

    def set_setting(self, key: str, value: str) -> None:
        with self._lock:
            self._settings[key] = value

    def delete_setting(self, key: str) -> None:
        with self._lock:
            self._settings.pop(key, None)


class RestRecordStore(RecordStore):
    """
    Record store backed by a PostgREST-compatible HTTP API.

    Tables use snake_case columns, see models.py for the row mapping.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0):
        """
        Initialize REST store.

        Args:
            base_url: Project URL, e.g. https://project.supabase.co
            api_key: Key sent as `apikey` and bearer token
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

    def _request(
        self,
        method: str,
        table: str,
        action: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f'{self.base_url}/rest/v1/{table}'
        headers = {'Prefer': prefer} if prefer else None

        try:
            response = self.session.request(
                method, url, params=params, json=json,
                headers=headers, timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f'Store request failed ({action}): {e}')
            raise StoreError(f'Error {action}: {e}') from e

        if not response.ok:
            logger.error(f'Store error ({action}): {response.status_code} {response.text}')
            raise StoreError(f'Error {action}: {response.status_code} {response.text}')

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f'Error {action}: invalid JSON response') from e

    # --- Staff ---

    def add_staff(self, record: StaffRecord) -> None:
        self._request('POST', 'staff', 'adding staff', json=record.to_row())

    def list_staff(self) -> List[StaffRecord]:
        rows = self._request(
            'GET', 'staff', 'fetching staff',
            params={'select': '*', 'order': 'registered_at.desc'},
        )
        return [StaffRecord.from_row(r) for r in rows or []]

    def get_staff(self, staff_id: str) -> Optional[StaffRecord]:
        rows = self._request(
            'GET', 'staff', 'fetching staff',
            params={'select': '*', 'id': f'eq.{staff_id}'},
        )
        return StaffRecord.from_row(rows[0]) if rows else None

    def delete_staff(self, staff_id: str) -> None:
        self._request('DELETE', 'staff', 'deleting staff', params={'id': f'eq.{staff_id}'})

    def update_staff_recognition_token(self, staff_id: str, token: str) -> None:
        self._request(
            'PATCH', 'staff', 'updating face token',
            params={'id': f'eq.{staff_id}'}, json={'face_token': token},
        )

    def list_staff_ids(self) -> List[str]:
        rows = self._request(
            'GET', 'staff', 'generating ID',
            params={'select': 'id', 'order': 'id.desc'},
        )
        return [r['id'] for r in rows or []]

    # --- Staff images ---

    def add_staff_images(self, staff_id: str, images: List[StaffImage]) -> None:
        rows = [
            {'staff_id': staff_id, 'image_base64': img.image, 'angle_type': img.angle}
            for img in images
        ]
        self._request('POST', 'staff_images', 'adding staff images', json=rows)

    def get_staff_images(self, staff_id: str) -> List[StaffImage]:
        rows = self._request(
            'GET', 'staff_images', 'fetching staff images',
            params={
                'select': '*',
                'staff_id': f'eq.{staff_id}',
                'order': 'created_at.asc',
            },
        )
        return [StaffImage.from_row(r) for r in rows or []]

    def delete_staff_images(self, staff_id: str) -> None:
        self._request(
            'DELETE', 'staff_images', 'deleting staff images',
            params={'staff_id': f'eq.{staff_id}'},
        )

    # --- Check-ins ---

    def add_check_in(self, event: CheckInEvent) -> CheckInEvent:
        rows = self._request(
            'POST', 'check_ins', 'logging check-in',
            json=event.to_row(), prefer='return=representation',
        )
        return CheckInEvent.from_row(rows[0]) if rows else event

    def recent_check_ins(self, limit: int = 50) -> List[CheckInEvent]:
        rows = self._request(
            'GET', 'check_ins', 'fetching check-ins',
            params={'select': '*', 'order': 'timestamp.desc', 'limit': str(limit)},
        )
        return [CheckInEvent.from_row(r) for r in rows or []]

    def all_check_ins(self) -> List[CheckInEvent]:
        rows = self._request(
            'GET', 'check_ins', 'fetching check-ins for export',
            params={'select': '*', 'order': 'timestamp.desc'},
        )
        return [CheckInEvent.from_row(r) for r in rows or []]

    def clear_all(self) -> None:
        # check_ins and staff_images reference staff, delete them first
        self._request('DELETE', 'check_ins', 'clearing check-ins', params={'id': 'neq.0'})
        self._request('DELETE', 'staff_images', 'clearing staff images', params={'id': 'neq.0'})
        self._request('DELETE', 'staff', 'clearing staff', params={'id': 'neq.'})

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        rows = self._request(
            'GET', 'settings', 'fetching setting',
            params={'select': 'value', 'key': f'eq.{key}'},
        )
        if not rows:
            return None
        return rows[0].get('value') or None

    def set_setting(self, key: str, value: str) -> None:
        self._request(
            'POST', 'settings', 'saving setting',
            params={'on_conflict': 'key'},
            json={'key': key, 'value': value, 'updated_at': now_ms()},
            prefer='resolution=merge-duplicates',
        )

    def delete_setting(self, key: str) -> None:
        self._request('DELETE', 'settings', 'deleting setting', params={'key': f'eq.{key}'})


def create_store(config: Config) -> RecordStore:
    """
    Build the record store selected by configuration.

    Args:
        config: Service configuration

    Returns:
        RestRecordStore when STORE_URL is set, otherwise InMemoryRecordStore
    """
    if config.store_url:
        logger.info(f'Using REST record store at {config.store_url}')
        return RestRecordStore(config.store_url, config.store_api_key)

    logger.warning('STORE_URL not set, using in-memory record store (data is not persisted)')
    return InMemoryRecordStore()
