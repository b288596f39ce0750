"""
Telemetry sync API endpoints.

Provides endpoints for:
- POST /api/sync - Sync one hourly shard ({"hour": 0-23}) or all 24
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from atmosfault.exceptions import StorageError, UpstreamUnavailable
from atmosfault.ingestion import validate_batch_index

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/api/sync')


@sync_bp.route('', methods=['POST'])
def sync_telemetry():
    """
    Pull telemetry shards into the store.

    Body (optional): {"hour": int 0-23}
    - with hour: sync that shard; failures surface as errors
    - without:   sync all shards; per-shard failures are reported as 0
    """
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return jsonify({'error': 'JSON object body expected'}), 400

    pipeline = current_app.config['INGESTION_PIPELINE']

    if 'hour' in body and body['hour'] is not None:
        # Raises ValidationError (400) for anything but an int in range
        hour = validate_batch_index(body['hour'])
        try:
            count = pipeline.ingest_batch(hour)
        except (UpstreamUnavailable, StorageError) as e:
            logger.error(f'Sync of hour {hour} failed: {e}')
            return jsonify({'error': 'Failed to sync data', 'message': str(e)}), 500
        return jsonify({
            'success': True,
            'hour': hour,
            'records_processed': count,
        })

    result = pipeline.ingest_all()
    return jsonify({'success': True, **result.to_dict()})
