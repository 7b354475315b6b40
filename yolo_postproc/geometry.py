from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(value, upper))


def cxcywh_to_xywh(cx: float, cy: float, w: float, h: float) -> Tuple[float, float, float, float]:
    """
    Center form -> top-left corner form. Width and height are kept as-is.
    """

    return cx - w / 2.0, cy - h / 2.0, w, h


def box_iou(a: Sequence[float], b: Sequence[float]) -> float:
    """
    IoU of two (x, y, w, h) rectangles. Returns 0.0 for disjoint boxes.
    """

    ax1, ay1, aw, ah = a
    bx1, by1, bw, bh = b
    ax2, ay2 = ax1 + aw, ay1 + ah
    bx2, by2 = bx1 + bw, by1 + bh

    iw = min(ax2, bx2) - max(ax1, bx1)
    ih = min(ay2, by2) - max(ay1, by1)
    if iw <= 0 or ih <= 0:
        return 0.0

    inter = iw * ih
    union = aw * ah + bw * bh - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def pairwise_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against an (N, 4) xyxy array.
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    w = np.maximum(0.0, xx2 - xx1)
    h = np.maximum(0.0, yy2 - yy1)
    inter = w * h

    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    return np.where(union > 0, inter / np.maximum(union, 1e-12), 0.0)


def scale_ratio(dst_w: float, dst_h: float, src_w: float, src_h: float) -> float:
    """
    Letterbox gain from a (src_w, src_h) image into a (dst_w, dst_h) canvas.
    """

    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Image size must be positive, got ({src_w}, {src_h})")
    return min(dst_w / src_w, dst_h / src_h)


def scale_wh(w0: float, h0: float, w1: float, h1: float) -> Tuple[float, int, int]:
    """
    Fit (w0, h0) into (w1, h1) preserving aspect ratio.

    Returns:
        (r, w, h): the gain and the rounded size of the fitted region. With a
        top-left aligned letterbox this is the un-padded area of the canvas.
    """

    r = scale_ratio(w1, h1, w0, h0)
    # half-up rounding; sizes are non-negative
    return r, int(w0 * r + 0.5), int(h0 * r + 0.5)
