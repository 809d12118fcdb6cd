"""
Affect Control Package

Webcam-driven affect classification and stabilization for adaptive
interfaces, using facial-expression probabilities and facial geometry.
"""

__version__ = "0.1.0"

from affect_control.features import (
    AFFECT_LABELS,
    BASE_EXPRESSIONS,
    DEFAULT_LABEL,
    GeometricFeatures,
)
from affect_control.geometry import GeometryConfig, GeometryExtractor
from affect_control.calibration import CalibrationBaseline, CalibrationTracker
from affect_control.window import RollingWindow
from affect_control.scoring import AffectScorer, Decision, ScoringConfig, score_affect
from affect_control.stabilizer import Stabilizer
from affect_control.engine import AffectEngine, AffectReport, EngineConfig
from affect_control.adaptation import ADAPTATION, AdaptationHub, AdaptationProfile
from affect_control.config import load_config, save_config

__all__ = [
    "AFFECT_LABELS",
    "BASE_EXPRESSIONS",
    "DEFAULT_LABEL",
    "GeometricFeatures",
    "GeometryConfig",
    "GeometryExtractor",
    "CalibrationBaseline",
    "CalibrationTracker",
    "RollingWindow",
    "AffectScorer",
    "Decision",
    "ScoringConfig",
    "score_affect",
    "Stabilizer",
    "AffectEngine",
    "AffectReport",
    "EngineConfig",
    "ADAPTATION",
    "AdaptationHub",
    "AdaptationProfile",
    "load_config",
    "save_config",
]
