"""
Flask application for HTTP API.

Thin adapter for the kiosk and admin clients:
- GET  /health: Service health check
- POST /api/verify, /api/verify/cancel, GET /api/verify/state: Check-in kiosk
- /api/enrollment[...]: Single in-progress enrollment session
- /api/staff, /api/check-ins, /api/analytics, /api/export, /api/data: Admin
- /api/settings/<key>, /api/faceset: Oracle configuration
"""

import threading
import time
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from .analytics import staff_insights, summary
from .enrollment import CaptureSession
from .errors import CredentialMissing, OracleUnavailable, StoreError, ValidationError
from .logging_config import get_logger
from .models import StaffRecord
from .services import Services
from .settings import KNOWN_KEYS
from .utils.timing import format_uptime
from .verification import VerificationOutcome

logger = get_logger(__name__)


def staff_to_dict(staff: StaffRecord) -> Dict[str, Any]:
    return {
        'id': staff.id,
        'fullName': staff.full_name,
        'assignedUnit': staff.assigned_unit.value,
        'registeredAt': staff.registered_at,
        'hasRecognitionToken': bool(staff.recognition_token),
    }


def outcome_to_dict(outcome: VerificationOutcome) -> Dict[str, Any]:
    return {
        'success': outcome.success,
        'message': outcome.message,
        'confidence': outcome.confidence,
        'staff': staff_to_dict(outcome.staff) if outcome.staff else None,
        'checkInId': outcome.check_in.id if outcome.check_in else None,
        'failureReason': outcome.failure_reason.value if outcome.failure_reason else None,
        'mode': outcome.mode.value if outcome.mode else None,
        'candidates': [
            {'staffId': staff_id, 'isMatch': d.is_match, 'explanation': d.explanation}
            for staff_id, d in outcome.decisions
        ],
    }


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Expected a JSON object body')
    return body


def create_app(services: Services) -> Flask:
    """
    Create and configure Flask application.

    Args:
        services: Wired service components

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)

    enrollment_lock = threading.Lock()
    current: Dict[str, Optional[Any]] = {'session': None, 'staff_id': None}

    def active_session() -> CaptureSession:
        session = current['session']
        if session is None or session.closed:
            raise ValidationError('No enrollment session in progress')
        return session

    def session_payload() -> Dict[str, Any]:
        session = active_session()
        payload = session.summary()
        payload['staffId'] = current['staff_id']
        return payload

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(CredentialMissing)
    def handle_credentials(e):
        return jsonify({'error': str(e)}), 412

    @app.errorhandler(StoreError)
    def handle_store(e):
        logger.error(f'Store error: {e}')
        return jsonify({'error': str(e)}), 502

    @app.errorhandler(OracleUnavailable)
    def handle_oracle(e):
        return jsonify({'error': str(e)}), 503

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify({
            'status': 'ok',
            'kiosk': services.config.kiosk_id,
            'backend': services.selector.current().mode.value,
            'verification': services.verifier.state.value,
            'uptime': format_uptime(time.time() - services.started_at),
        })

    # --- Kiosk ---

    @app.route('/api/verify', methods=['POST'])
    def verify():
        outcome = services.verifier.submit(_json_body().get('image', ''))
        if outcome is None:
            return jsonify({'status': 'ignored', 'state': 'scanning'}), 409
        return jsonify(outcome_to_dict(outcome))

    @app.route('/api/verify/cancel', methods=['POST'])
    def cancel_verify():
        return jsonify({'cancelled': services.verifier.cancel()})

    @app.route('/api/verify/state')
    def verify_state():
        outcome = services.verifier.last_outcome
        return jsonify({
            'state': services.verifier.state.value,
            'result': outcome_to_dict(outcome) if outcome else None,
        })

    # --- Enrollment ---

    @app.route('/api/enrollment', methods=['POST'])
    def start_enrollment():
        with enrollment_lock:
            if current['session'] is not None:
                current['session'].close()
            current['staff_id'] = services.enrollment.allocate_id()
            current['session'] = services.enrollment.start_session()
            return jsonify(session_payload()), 201

    @app.route('/api/enrollment', methods=['GET'])
    def get_enrollment():
        return jsonify(session_payload())

    @app.route('/api/enrollment', methods=['DELETE'])
    def abandon_enrollment():
        with enrollment_lock:
            session = current['session']
            if session is not None:
                session.close()
            current['session'] = None
            current['staff_id'] = None
        return jsonify({'abandoned': session is not None})

    @app.route('/api/enrollment/capture', methods=['POST'])
    def capture():
        photo = active_session().submit_capture(_json_body().get('image', ''))
        payload = session_payload()
        payload['capture'] = {
            'angle': photo.angle,
            'valid': photo.valid,
            'reason': photo.reason,
            'skipped': photo.skipped,
        }
        return jsonify(payload)

    @app.route('/api/enrollment/angle', methods=['POST'])
    def select_angle():
        index = _json_body().get('index')
        if not isinstance(index, int):
            raise ValidationError('index must be an integer')
        active_session().select_angle(index)
        return jsonify(session_payload())

    @app.route('/api/enrollment/retake', methods=['POST'])
    def retake():
        active_session().retake()
        return jsonify(session_payload())

    @app.route('/api/enrollment/finalize', methods=['POST'])
    def finalize():
        body = _json_body()
        with enrollment_lock:
            record = services.enrollment.finalize(
                active_session(),
                staff_id=current['staff_id'] or '',
                full_name=body.get('fullName', ''),
                unit=body.get('unit', ''),
            )
            current['session'] = None
            current['staff_id'] = None
        return jsonify(staff_to_dict(record)), 201

    # --- Admin ---

    @app.route('/api/staff')
    def list_staff():
        return jsonify([staff_to_dict(s) for s in services.store.list_staff()])

    @app.route('/api/staff/<staff_id>', methods=['DELETE'])
    def delete_staff(staff_id: str):
        if not services.enrollment.remove_staff(staff_id):
            return jsonify({'error': f'Staff {staff_id} not found'}), 404
        return jsonify({'deleted': staff_id})

    @app.route('/api/check-ins')
    def check_ins():
        limit = request.args.get('limit', default=50, type=int)
        return jsonify([e.to_row() | {'id': e.id} for e in services.recorder.recent(limit)])

    @app.route('/api/analytics')
    def analytics():
        payload = summary(services.store)
        if request.args.get('insights') in ('1', 'true'):
            payload['insights'] = staff_insights(services.gemini, services.store.list_staff())
        return jsonify(payload)

    @app.route('/api/export')
    def export():
        return jsonify(services.export_snapshot())

    @app.route('/api/data', methods=['DELETE'])
    def clear_data():
        services.clear_all_data()
        return jsonify({'cleared': True})

    # --- Configuration ---

    @app.route('/api/settings/<key>', methods=['PUT', 'DELETE'])
    def update_setting(key: str):
        if key not in KNOWN_KEYS:
            raise ValidationError(f'Unknown setting {key}')
        if request.method == 'DELETE':
            services.settings.delete(key)
            return jsonify({'key': key, 'deleted': True})

        value = str(_json_body().get('value', '')).strip()
        if not value:
            raise ValidationError('value is required')
        services.settings.set(key, value)
        return jsonify({'key': key, 'updated': True})

    @app.route('/api/faceset', methods=['POST'])
    def create_faceset():
        display_name = _json_body().get('displayName') or 'FalgatesStaff'
        token = services.facepp.create_faceset(display_name, outer_id=f'falgates_{int(time.time() * 1000)}')
        return jsonify({'facesetToken': token}), 201

    @app.route('/api/faceset', methods=['GET'])
    def faceset_info():
        if not services.settings.has_faceset():
            return jsonify({'configured': False})
        return jsonify({'configured': True, 'faceCount': services.facepp.faceset_face_count()})

    return app
