"""
API module for AtmosFault.

Provides REST endpoints for:
- Tracking lookups (carrier shipments and balloons)
- Telemetry sync triggers
"""

from atmosfault.api.tracking import tracking_bp
from atmosfault.api.sync import sync_bp

__all__ = ['tracking_bp', 'sync_bp']
