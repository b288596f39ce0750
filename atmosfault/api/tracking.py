"""
Tracking API endpoints.

Provides endpoints for:
- GET /api/track/<tracking_number> - Tracking data with weather and blame
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

tracking_bp = Blueprint('tracking', __name__, url_prefix='/api/track')


@tracking_bp.route('/<path:tracking_number>', methods=['GET'])
def get_tracking(tracking_number: str):
    """
    Look up a shipment or balloon.

    Returns:
    - 200 with the tracking response
    - 404 if the id is unknown or the provider is unavailable
    """
    start_time = time.perf_counter()

    assembler = current_app.config['TRACKING_ASSEMBLER']
    tracking = assembler.assemble(tracking_number)

    if tracking is None:
        return jsonify({
            'error': 'Tracking number not found or tracking provider unavailable',
            'tracking_number': tracking_number,
        }), 404

    body = tracking.to_dict()
    body['query_time_ms'] = round((time.perf_counter() - start_time) * 1000, 2)
    return jsonify(body)
