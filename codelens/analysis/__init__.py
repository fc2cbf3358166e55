"""
Analysis module for structural anomaly detection.
"""

from .anomaly_detector import AnomalyDetector

__all__ = [
    'AnomalyDetector'
]
