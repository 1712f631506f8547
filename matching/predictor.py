from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from common.config import PredictorConfig
from common.errors import InferenceError
from common.logging_setup import get_logger, write_metrics_row
from common.utils import RunningStats, Stopwatch, iso_now_ms
from matching.homography import Homography
from matching.models import MatchingModel, load_model
from matching.preprocess import ModelInput, prepare_input, rescale_homography

log = get_logger("matching.predictor")

STAGES = ("preprocess", "inference", "postprocess", "total")


class PredictorMetrics:
    """Per-stage timing accumulator (milliseconds). Diagnostics only."""

    def __init__(self) -> None:
        self.stages: Dict[str, RunningStats] = {s: RunningStats() for s in STAGES}
        self.failures = 0

    def record(self, **ms: float) -> None:
        for stage, value in ms.items():
            self.stages[stage].add(value)

    def latest(self) -> Dict[str, float]:
        return {s: round(st.last, 2) for s, st in self.stages.items()}

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            s: {"n": st.n, "mean_ms": round(st.mean, 2), "std_ms": round(st.std, 2)}
            for s, st in self.stages.items()
        }

    @property
    def predictions(self) -> int:
        return self.stages["total"].n


class CorrespondencePredictor:
    """
    Predicts the homography mapping reference-map pixels to live-capture pixels.

    Inference is CPU/GPU bound and runs in a worker thread; `predict` suspends
    the caller without blocking the event loop. The model is read-only and
    the prepared reference is swapped under a lock, so concurrent predictions
    are safe.
    """

    def __init__(
        self,
        model: MatchingModel,
        input_size: Optional[Tuple[int, int]] = (480, 360),
        *,
        metrics_file: Optional[str] = None,
        clahe_clip: Optional[float] = None,
    ):
        self.model = model
        self.input_size = tuple(input_size) if input_size else None
        self.clahe_clip = clahe_clip
        self.metrics = PredictorMetrics()
        self.metrics_file = Path(metrics_file) if metrics_file else None
        self._ref_lock = threading.Lock()
        self._ref_image: Optional[np.ndarray] = None
        self._ref_input: Optional[ModelInput] = None

    @classmethod
    async def load(cls, cfg: PredictorConfig, *, metrics_file: Optional[str] = None) -> "CorrespondencePredictor":
        """Load the configured backend off the event loop."""
        model = await asyncio.to_thread(load_model, cfg)
        log.info("Matching model ready", extra={"extra": {"backend": model.name, "input": cfg.input_size}})
        return cls(model, cfg.input_size, metrics_file=metrics_file, clahe_clip=cfg.clahe_clip)

    async def predict(self, reference: np.ndarray, live: np.ndarray) -> Homography:
        return await asyncio.to_thread(self.predict_sync, reference, live)

    def predict_sync(self, reference: np.ndarray, live: np.ndarray) -> Homography:
        """
        Blocking prediction. Raises InferenceError if the pair cannot be matched.
        """
        with Stopwatch() as total:
            with Stopwatch() as pre:
                try:
                    ref_in = self._reference_input(reference)
                    live_in = prepare_input(live, self.input_size, clahe_clip=self.clahe_clip)
                except (ValueError, cv2.error) as ex:
                    self.metrics.failures += 1
                    raise InferenceError(f"cannot prepare input pair: {ex}") from ex
            with Stopwatch() as inf:
                try:
                    res = self.model.estimate(ref_in, live_in)
                except InferenceError:
                    self.metrics.failures += 1
                    raise
                except cv2.error as ex:
                    self.metrics.failures += 1
                    raise InferenceError(f"{self.model.name}: {ex}") from ex
            with Stopwatch() as post:
                try:
                    H = Homography(rescale_homography(res.H, ref_in, live_in))
                except (ValueError, np.linalg.LinAlgError) as ex:
                    self.metrics.failures += 1
                    raise InferenceError(f"invalid homography: {ex}") from ex
                if not H.is_well_conditioned():
                    self.metrics.failures += 1
                    raise InferenceError("ill-conditioned homography")

        self.metrics.record(preprocess=pre.ms, inference=inf.ms, postprocess=post.ms, total=total.ms)
        latest = self.metrics.latest()
        log.debug(
            "Homography prediction metrics",
            extra={"extra": {**latest, "inliers": res.inliers, "matches": res.total, "rmse_px": round(res.rmse_px, 3)}},
        )
        if self.metrics_file is not None:
            write_metrics_row(
                self.metrics_file,
                {"ts": iso_now_ms(), "backend": self.model.name, "inliers": res.inliers,
                 "matches": res.total, "rmse_px": res.rmse_px, **latest},
            )
        return H

    def _reference_input(self, reference: np.ndarray) -> ModelInput:
        # The reference map is fixed for a session; prepare it once. Holding
        # the array itself keeps an identity check valid across GC.
        with self._ref_lock:
            if self._ref_image is not reference or self._ref_input is None:
                self._ref_input = prepare_input(reference, self.input_size, clahe_clip=self.clahe_clip)
                self._ref_image = reference
            return self._ref_input
