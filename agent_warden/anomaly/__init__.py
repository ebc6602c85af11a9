"""Anomaly detection: behavioral baseline, pattern checks, pause switch."""

from agent_warden.anomaly.detector import ActivityRecord, AnomalyDetector
from agent_warden.anomaly.models import (
    AnomalyAction,
    AnomalyConfig,
    AnomalyEvent,
    AnomalyType,
    BehavioralBaseline,
    Severity,
)

__all__ = [
    "ActivityRecord",
    "AnomalyAction",
    "AnomalyConfig",
    "AnomalyDetector",
    "AnomalyEvent",
    "AnomalyType",
    "BehavioralBaseline",
    "Severity",
]
