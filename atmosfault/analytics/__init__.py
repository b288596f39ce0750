"""
Analytics module for AtmosFault.

Correlates tracked objects with nearby balloon telemetry and scores how
strongly each sample is implicated in a delay.
"""

from atmosfault.analytics.correlation import (
    CorrelationEngine,
    CorrelationResult,
    Candidate,
    ThreatLevel,
    BlameCategory,
    severity_score,
)

__all__ = [
    'CorrelationEngine',
    'CorrelationResult',
    'Candidate',
    'ThreatLevel',
    'BlameCategory',
    'severity_score',
]
