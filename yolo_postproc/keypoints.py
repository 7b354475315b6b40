from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from .geometry import clamp
from .types import Keypoint

KPT_STEP = 3


def decode_keypoints(
    block: np.ndarray,
    nk: int,
    kconfs: Sequence[float],
    ratio: float,
    width: float,
    height: float,
) -> List[Keypoint]:
    """
    Decode a flat (x, y, conf) * nk block into exactly `nk` keypoints.

    Keypoints under their per-index threshold are replaced by `Keypoint()` so
    index `i` always refers to the same body part.
    """

    block = np.asarray(block)
    dtype = block.dtype if np.issubdtype(block.dtype, np.floating) else np.float32
    # compared in the block precision, like the class scores
    thresholds = np.asarray(kconfs, dtype=dtype)
    confs = block[KPT_STEP - 1 :: KPT_STEP].astype(dtype, copy=False)

    kpts: List[Keypoint] = []
    for i in range(nk):
        kx = float(block[KPT_STEP * i]) / ratio
        ky = float(block[KPT_STEP * i + 1]) / ratio
        kconf = float(confs[i])
        if not math.isfinite(kconf) or confs[i] < thresholds[i]:
            kpts.append(Keypoint())
            continue
        kpts.append(Keypoint(x=clamp(kx, 0.0, width), y=clamp(ky, 0.0, height), confidence=kconf))
    return kpts
