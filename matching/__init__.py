"""
Correspondence Predictor

This package provides:
- Homography: reference-map -> live-view projective transform with rect projection
- Matching backends keyed by name: ORB + RANSAC ("orb") and TorchScript
  SuperPoint/SuperGlue ("superglue")
- CorrespondencePredictor: async wrapper that offloads inference to a worker
  thread and keeps per-stage timing metrics
"""
from .homography import Homography
from .models import MODEL_BACKENDS, MatchingModel, OrbMatchingModel, load_model
from .predictor import CorrespondencePredictor, PredictorMetrics

__all__ = [
    "Homography",
    "MODEL_BACKENDS",
    "MatchingModel",
    "OrbMatchingModel",
    "load_model",
    "CorrespondencePredictor",
    "PredictorMetrics",
]
