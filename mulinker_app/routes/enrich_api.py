"""
================================================================================
mulinker - Enrichment API Routes
================================================================================
Flask blueprint for sessions, enrichment progress, review and downloads.

ENDPOINTS:
  POST   /api/sessions                     - Create a session from a title list
  POST   /api/enrich                       - Start enrichment (idempotent)
  GET    /api/session/<id>                 - Poll progress and records
  GET    /api/session/<id>/review          - Records awaiting confirmation
  POST   /api/update                       - Apply the review decision
  GET    /api/download/<id>/<format>       - muTxt | plainTxt
  DELETE /api/session/<id>                 - Cancel and drop a session
  GET    /api/status                       - Cache / limiter statistics
================================================================================
"""

from datetime import date
import logging

from flask import Blueprint, Response, current_app, jsonify, request

from ..errors import ReviewError, SessionNotFoundError, UnsupportedTargetError
from ..exporters import EXPORT_FORMATS
from ..matching.models import Subscription
from ..rate_limit import limit_heavy, limit_light
from ..services.enrichment_service import EnrichmentService
from .validators import parse_subscriptions, validate_session_id

logger = logging.getLogger(__name__)

enrich_bp = Blueprint('enrich_api', __name__)


def get_enrichment_service() -> EnrichmentService:
    """The service instance created by create_app()."""
    return current_app.extensions['mulinker']


def _session_not_found(session_id):
    return jsonify({'error': 'Session not found', 'sessionId': session_id}), 404


@enrich_bp.route('/api/sessions', methods=['POST'])
@limit_heavy
def create_session():
    """
    Create an enrichment session.

    Request:
        {"titles": ["One Piece", "Blue Box"]}
      or
        {"subscriptions": [{"title": "One Piece", "url": "https://..."}]}

    Returns:
        {"success": true, "sessionId": "session-…", "count": 2}
    """
    data = request.get_json(silent=True) or {}
    items, error = parse_subscriptions(data)
    if error:
        return jsonify({'error': error}), 400

    records = [Subscription.from_dict(item) for item in items]
    session = get_enrichment_service().create_session(records, user_id=data.get('userId'))
    return jsonify({'success': True, 'sessionId': session.id, 'count': len(records)}), 201


@enrich_bp.route('/api/enrich', methods=['POST'])
@limit_heavy
def start_enrichment():
    """
    Start enrichment for a session.

    Request:
        {"sessionId": "session-…", "target": "mangaupdates"}

    Returns:
        {"success": true, "status": "started"} on the first call,
        {"success": true, "status": {status, current, total}} afterwards
    """
    data = request.get_json(silent=True) or {}
    session_id = data.get('sessionId')
    error = validate_session_id(session_id)
    if error:
        return jsonify({'error': error}), 400

    try:
        started, progress = get_enrichment_service().start(session_id, data.get('target'))
    except SessionNotFoundError:
        return _session_not_found(session_id)
    except UnsupportedTargetError as e:
        return jsonify({'error': str(e)}), 400

    if started:
        return jsonify({'success': True, 'status': 'started'})
    return jsonify({'success': True, 'status': progress.to_dict()})


@enrich_bp.route('/api/session/<session_id>', methods=['GET'])
@limit_light
def get_session(session_id):
    """Current enrichment state and merged records (for polling)."""
    try:
        session = get_enrichment_service().get_session(session_id)
    except SessionNotFoundError:
        return _session_not_found(session_id)
    return jsonify(session.to_dict())


@enrich_bp.route('/api/session/<session_id>/review', methods=['GET'])
@limit_light
def get_review(session_id):
    """Low-confidence fuzzy matches awaiting the user's decision."""
    try:
        flagged = get_enrichment_service().flagged(session_id)
    except SessionNotFoundError:
        return _session_not_found(session_id)
    return jsonify({'review': flagged, 'count': len(flagged)})


@enrich_bp.route('/api/update', methods=['POST'])
@limit_light
def apply_review():
    """
    Apply the review decision.

    Request:
        {"sessionId": "session-…", "rejectedIndices": [3, 7]}

    Returns:
        {"success": true, "rejected": [3, 7]}
    """
    data = request.get_json(silent=True) or {}
    session_id = data.get('sessionId')
    error = validate_session_id(session_id)
    if error:
        return jsonify({'error': error}), 400

    rejected = data.get('rejectedIndices', [])
    if not isinstance(rejected, list):
        return jsonify({'error': "Field 'rejectedIndices' must be list"}), 400

    try:
        applied = get_enrichment_service().apply_review(session_id, rejected)
    except SessionNotFoundError:
        return _session_not_found(session_id)
    except ReviewError as e:
        return jsonify({'error': str(e)}), 409

    return jsonify({'success': True, 'rejected': applied})


@enrich_bp.route('/api/download/<session_id>/<export_format>', methods=['GET'])
@limit_light
def download(session_id, export_format):
    """Download the reading list in the requested format."""
    exporter = EXPORT_FORMATS.get(export_format)
    if exporter is None:
        return jsonify({'error': 'Invalid format'}), 400

    try:
        session = get_enrichment_service().get_session(session_id)
    except SessionNotFoundError:
        return Response('Session expired or not found. Please extract again.', status=404,
                        mimetype='text/plain')

    export, suffix = exporter
    owner = session.user_id or 'reading_list'
    filename = f"{owner}_{date.today().isoformat()}_{suffix}"
    content = export(session.state.records)

    response = Response(content, mimetype='text/plain')
    response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@enrich_bp.route('/api/session/<session_id>', methods=['DELETE'])
@limit_light
def delete_session(session_id):
    """Cancel any running enrichment and drop the session."""
    if not get_enrichment_service().delete_session(session_id):
        return _session_not_found(session_id)
    return jsonify({'success': True})


@enrich_bp.route('/api/status', methods=['GET'])
@limit_light
def status():
    """Cache and rate limiter statistics."""
    return jsonify(get_enrichment_service().stats())
