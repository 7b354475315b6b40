from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .errors import ConfigurationError
from .geometry import pairwise_iou
from .types import Candidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None
    # Global suppression across classes; False runs NMS per class_id then merges by score.
    class_agnostic: bool = True

    def __post_init__(self) -> None:
        if not (0.0 <= self.iou_threshold <= 1.0):
            raise ConfigurationError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ConfigurationError(f"max_detections must be > 0, got {self.max_detections}")


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    A box is dropped when its IoU with an already kept box is strictly greater
    than `cfg.iou_threshold`. Equal scores keep their input order.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(int(i))

        rest = order[1:]
        iou = pairwise_iou(boxes[i], boxes[rest])
        order = rest[iou <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def _candidate_arrays(candidates: Sequence[Candidate]):
    boxes = np.array([c.detection.as_xyxy() for c in candidates], dtype=np.float64).reshape(-1, 4)
    scores = np.array([c.detection.confidence for c in candidates], dtype=np.float64)
    class_ids = np.array([c.detection.class_id for c in candidates], dtype=np.int64)
    return boxes, scores, class_ids


def suppress(candidates: Sequence[Candidate], cfg: NMSConfig) -> List[Candidate]:
    """
    Run NMS over decoded candidates, keeping each tuple intact so keypoints
    and mask coefficients stay attached to their detection.
    """

    if not candidates:
        return []

    boxes, scores, class_ids = _candidate_arrays(candidates)

    if cfg.class_agnostic:
        keep_idx = nms(boxes, scores, cfg)
    else:
        kept: List[int] = []
        for cls in np.unique(class_ids):
            idx = np.where(class_ids == cls)[0]
            keep_local = nms(boxes[idx], scores[idx], cfg)
            kept.extend(idx[keep_local].tolist())

        keep_idx = np.array(sorted(kept), dtype=np.int64)
        order = np.argsort(-scores[keep_idx], kind="stable")
        keep_idx = keep_idx[order]
        if cfg.max_detections is not None:
            keep_idx = keep_idx[: cfg.max_detections]

    logger.debug("NMS kept %d of %d candidates", keep_idx.size, len(candidates))
    return [candidates[i] for i in keep_idx]
