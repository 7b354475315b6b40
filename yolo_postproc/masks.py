from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import ShapeError
from .geometry import scale_wh
from .types import Detection


def _soft_mask(coefficients: np.ndarray, proto: np.ndarray) -> np.ndarray:
    """
    (1, nm) @ (nm, ph * pw) -> (ph, pw).
    """

    if proto.ndim != 3:
        raise ShapeError(f"Prototype must be (nm, h, w), got shape {proto.shape}")
    nm, ph, pw = proto.shape
    coefs = np.asarray(coefficients, dtype=np.float32).reshape(1, -1)
    if coefs.shape[1] != nm:
        raise ShapeError(f"Got {coefs.shape[1]} mask coefficients for a prototype with nm={nm}")
    try:
        flat = np.asarray(proto, dtype=np.float32).reshape(nm, ph * pw)
        return (coefs @ flat).reshape(ph, pw)
    except ValueError as e:
        raise ShapeError(f"Cannot reshape mask product to ({ph}, {pw})") from e


def crop_to_box(mask: np.ndarray, detection: Detection) -> np.ndarray:
    """
    Zero every pixel outside the detection box. Box edges are inclusive and
    truncated to integer pixel indices. Returns a new array.
    """

    out = np.zeros_like(mask)
    h, w = mask.shape[:2]
    x0, y0 = int(max(detection.xmin, 0.0)), int(max(detection.ymin, 0.0))
    x1, y1 = int(max(detection.xmax, 0.0)), int(max(detection.ymax, 0.0))
    if x0 >= w or y0 >= h:
        return out
    x1, y1 = min(x1, w - 1), min(y1, h - 1)
    out[y0 : y1 + 1, x0 : x1 + 1] = mask[y0 : y1 + 1, x0 : x1 + 1]
    return out


def reconstruct_mask(
    coefficients: np.ndarray,
    proto: np.ndarray,
    detection: Detection,
    width: int,
    height: int,
    threshold: Optional[float] = None,
) -> np.ndarray:
    """
    Build one instance mask in original image space.

    The prototype canvas is assumed to hold the letterboxed image aligned to
    its top-left corner, so the valid region is `[0:h_mask, 0:w_mask]`.

    Args:
        coefficients: (nm,) mask coefficients of one detection
        proto: (nm, ph, pw) prototype tensor of the image
        detection: owning detection, used to crop the raster
        width/height: original image size
        threshold: if set, binarise at `v > threshold` instead of the
            float -> byte conversion

    Returns:
        (height, width) uint8 raster
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for mask reconstruction. Install with `pip install opencv-python`.") from e

    width, height = int(width), int(height)
    mask = _soft_mask(coefficients, proto)
    ph, pw = mask.shape

    _, w_mask, h_mask = scale_wh(width, height, pw, ph)
    w_mask = min(max(w_mask, 1), pw)
    h_mask = min(max(h_mask, 1), ph)
    cropped = np.ascontiguousarray(mask[:h_mask, :w_mask])

    resized = cv2.resize(cropped, (width, height), interpolation=cv2.INTER_LINEAR)
    resized = resized.reshape(height, width)
    resized = np.nan_to_num(resized, nan=0.0)

    if threshold is None:
        raster = np.rint(np.clip(resized, 0.0, 1.0) * 255.0).astype(np.uint8)
    else:
        raster = np.where(resized > threshold, 255, 0).astype(np.uint8)

    return crop_to_box(raster, detection)
