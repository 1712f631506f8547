from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Protocol

import numpy as np

from common.config import PredictorConfig
from common.errors import ConfigError, InferenceError
from common.logging_setup import get_logger
from matching.features import HomographyResult, OrbDetector, fit_homography, ratio_matches
from matching.preprocess import ModelInput

log = get_logger("matching.models")


class MatchingModel(Protocol):
    """
    Estimates the homography reference -> live between two model inputs.

    Implementations raise InferenceError when the pair cannot be matched.
    They hold no per-call state and may be called from worker threads.
    """
    name: str

    def estimate(self, ref: ModelInput, live: ModelInput) -> HomographyResult:
        ...


def _check_result(name: str, res: HomographyResult, min_inliers: int) -> HomographyResult:
    if res.H is None:
        raise InferenceError(f"{name}: RANSAC found no homography ({res.total} matches)")
    if res.inliers < min_inliers:
        raise InferenceError(f"{name}: only {res.inliers}/{res.total} inliers (min {min_inliers})")
    if not np.all(np.isfinite(res.H)) or abs(np.linalg.det(res.H)) < 1e-9:
        raise InferenceError(f"{name}: degenerate homography")
    return res


class OrbMatchingModel:
    """ORB keypoints + Hamming KNN/Lowe ratio + RANSAC."""
    name = "orb"

    def __init__(
        self,
        *,
        nfeatures: int = 2000,
        fast_threshold: int = 12,
        ratio: float = 0.8,
        ransac_px: float = 4.0,
        min_matches: int = 12,
        min_inliers: int = 8,
    ):
        self.detector = OrbDetector(nfeatures=nfeatures, fast_threshold=fast_threshold)
        self.ratio = ratio
        self.ransac_px = ransac_px
        self.min_matches = min_matches
        self.min_inliers = min_inliers

    @classmethod
    def from_config(cls, cfg: PredictorConfig) -> "OrbMatchingModel":
        return cls(
            nfeatures=cfg.orb_nfeatures,
            fast_threshold=cfg.orb_fast_threshold,
            ratio=cfg.ratio,
            ransac_px=cfg.ransac_px,
            min_matches=cfg.min_matches,
            min_inliers=cfg.min_inliers,
        )

    def estimate(self, ref: ModelInput, live: ModelInput) -> HomographyResult:
        pts_ref, pts_live = ratio_matches(
            self.detector.detect(ref.gray), self.detector.detect(live.gray), ratio=self.ratio
        )
        if len(pts_ref) < self.min_matches:
            raise InferenceError(f"orb: {len(pts_ref)} matches (min {self.min_matches})")
        res = fit_homography(pts_ref, pts_live, ransac_px=self.ransac_px)
        return _check_result(self.name, res, self.min_inliers)


class SuperGlueMatchingModel:
    """
    TorchScript SuperPoint + SuperGlue.

    Expected exported signatures:
        superpoint(image[1,1,H,W] float in [0,1]) -> (keypoints[N,2], scores[N], descriptors[256,N])
        superglue(kpts0, scores0, desc0, kpts1, scores1, desc1, shape0[2], shape1[2])
            -> (matches0[N0] long, -1 = unmatched; matching_scores0[N0])
    """
    name = "superglue"

    def __init__(
        self,
        superpoint_path: Path,
        superglue_path: Path,
        *,
        device: str = "cpu",
        match_threshold: float = 0.2,
        ransac_px: float = 4.0,
        min_matches: int = 12,
        min_inliers: int = 8,
    ):
        try:
            import torch
        except ImportError as ex:  # pragma: no cover - environment dependent
            raise ImportError("The superglue backend needs torch (pip install '.[learned]')") from ex

        for p in (superpoint_path, superglue_path):
            if not Path(p).is_file():
                raise ConfigError(f"Model weights not found: {p}")
        self._torch = torch
        self.device = torch.device(device)
        self.superpoint = torch.jit.load(str(superpoint_path), map_location=self.device).eval()
        self.superglue = torch.jit.load(str(superglue_path), map_location=self.device).eval()
        self.match_threshold = match_threshold
        self.ransac_px = ransac_px
        self.min_matches = min_matches
        self.min_inliers = min_inliers
        log.info("Loaded SuperPoint/SuperGlue", extra={"extra": {"device": str(self.device)}})

    @classmethod
    def from_config(cls, cfg: PredictorConfig) -> "SuperGlueMatchingModel":
        models = Path(cfg.models_dir)
        return cls(
            models / "SuperPoint.pt",
            models / "SuperGlue.pt",
            device=cfg.torch_device,
            match_threshold=cfg.match_threshold,
            ransac_px=cfg.ransac_px,
            min_matches=cfg.min_matches,
            min_inliers=cfg.min_inliers,
        )

    def _keypoints(self, gray: np.ndarray):
        torch = self._torch
        t = torch.from_numpy(gray).float().div(255.0)[None, None].to(self.device)
        kpts, scores, desc = self.superpoint(t)
        return kpts, scores, desc

    def warmup(self, size) -> None:
        """Run one dummy pass so the first real prediction does not pay for allocation."""
        w, h = size
        blank = np.zeros((h, w), dtype=np.uint8)
        with self._torch.no_grad():
            self._keypoints(blank)

    def estimate(self, ref: ModelInput, live: ModelInput) -> HomographyResult:
        torch = self._torch
        try:
            with torch.no_grad():
                k0, s0, d0 = self._keypoints(ref.gray)
                k1, s1, d1 = self._keypoints(live.gray)
                shape0 = torch.tensor(ref.gray.shape[:2], device=self.device)
                shape1 = torch.tensor(live.gray.shape[:2], device=self.device)
                matches0, mscores0 = self.superglue(k0, s0, d0, k1, s1, d1, shape0, shape1)
        except RuntimeError as ex:
            raise InferenceError(f"superglue: model rejected input pair: {ex}") from ex

        matches0 = matches0.cpu().numpy().reshape(-1)
        mscores0 = mscores0.cpu().numpy().reshape(-1)
        valid = (matches0 > -1) & (mscores0 > self.match_threshold)
        if int(valid.sum()) < self.min_matches:
            raise InferenceError(f"superglue: {int(valid.sum())} matches (min {self.min_matches})")
        pts_ref = k0.cpu().numpy()[valid]
        pts_live = k1.cpu().numpy()[matches0[valid]]
        res = fit_homography(pts_ref, pts_live, ransac_px=self.ransac_px)
        return _check_result(self.name, res, self.min_inliers)


MODEL_BACKENDS: Dict[str, Callable[[PredictorConfig], MatchingModel]] = {
    OrbMatchingModel.name: OrbMatchingModel.from_config,
    SuperGlueMatchingModel.name: SuperGlueMatchingModel.from_config,
}


def load_model(cfg: PredictorConfig) -> MatchingModel:
    factory = MODEL_BACKENDS.get(cfg.backend.lower())
    if factory is None:
        raise ConfigError(f"Unknown predictor backend {cfg.backend!r}; choose from {sorted(MODEL_BACKENDS)}")
    model = factory(cfg)
    warmup = getattr(model, "warmup", None)
    if warmup is not None and cfg.input_size:
        # Preload to device memory
        warmup(cfg.input_size)
    return model
