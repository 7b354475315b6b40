from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import UnsupportedTaskError
from .geometry import box_iou


def _values_equal(a: Any, b: Any) -> bool:
    """
    Equality that also handles arrays and lists of arrays.
    """

    if a is None or b is None:
        return a is b
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return isinstance(a, np.ndarray) and isinstance(b, np.ndarray) and np.array_equal(a, b)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(_values_equal(x, y) for x, y in zip(a, b))
    return a == b


class YoloTask(Enum):
    CLASSIFY = "classify"
    DETECT = "detect"
    POSE = "pose"
    SEGMENT = "segment"

    @classmethod
    def parse(cls, value: Union["YoloTask", str]) -> "YoloTask":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for task in cls:
            if task.value == key:
                return task
        raise UnsupportedTaskError(
            f"Unsupported task {value!r}; expected one of {[t.value for t in cls]}"
        )


@dataclass(frozen=True)
class Detection:
    """
    Axis-aligned detection in original image pixels.

    (x, y) is the top-left corner; only the corner is clamped to the image,
    so `xmax`/`ymax` may extend past the right/bottom edge.
    """

    x: float
    y: float
    width: float
    height: float
    class_id: int
    confidence: float
    label: Optional[str] = None

    @property
    def xmin(self) -> float:
        return self.x

    @property
    def ymin(self) -> float:
        return self.y

    @property
    def xmax(self) -> float:
        return self.x + self.width

    @property
    def ymax(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.xmin, self.ymin, self.xmax, self.ymax

    def iou(self, other: "Detection") -> float:
        return box_iou(self.as_xywh(), other.as_xywh())


@dataclass(frozen=True)
class Keypoint:
    """
    A single keypoint. `Keypoint()` is the placeholder emitted for keypoints
    below their confidence threshold.
    """

    x: float = 0.0
    y: float = 0.0
    confidence: float = 0.0

    @property
    def is_visible(self) -> bool:
        return self.confidence > 0.0


@dataclass(frozen=True, eq=False)
class Embedding:
    data: np.ndarray
    names: Optional[Sequence[str]] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Embedding):
            return NotImplemented
        return _values_equal(self.names, other.names) and _values_equal(self.data, other.data)

    def topk(self, k: int = 5) -> List[Tuple[int, float, Optional[str]]]:
        """
        Highest scoring entries as (index, score, name) sorted by score.
        """

        scores = np.asarray(self.data, dtype=np.float64).ravel()
        k = max(0, min(int(k), scores.size))
        order = np.argsort(-scores, kind="stable")[:k]
        out = []
        for idx in order:
            name = self.names[idx] if self.names is not None and idx < len(self.names) else None
            out.append((int(idx), float(scores[idx]), name))
        return out


@dataclass(frozen=True, eq=False)
class Candidate:
    detection: Detection
    keypoints: Optional[List[Keypoint]]
    coefficients: Optional[np.ndarray]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Candidate):
            return NotImplemented
        return (
            self.detection == other.detection
            and self.keypoints == other.keypoints
            and _values_equal(self.coefficients, other.coefficients)
        )


@dataclass(frozen=True, eq=False)
class Results:
    """
    Per-image output. A field is None when the task never produces that kind
    of output; lists that are present are index-aligned with `detections`.
    """

    embedding: Optional[Embedding] = None
    detections: Optional[List[Detection]] = None
    keypoints: Optional[List[List[Keypoint]]] = None
    masks: Optional[List[np.ndarray]] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Results):
            return NotImplemented
        return (
            self.embedding == other.embedding
            and self.detections == other.detections
            and self.keypoints == other.keypoints
            and _values_equal(self.masks, other.masks)
        )
