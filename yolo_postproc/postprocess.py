from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError, ShapeError
from .geometry import clamp, cxcywh_to_xywh, scale_ratio
from .keypoints import KPT_STEP, decode_keypoints
from .masks import reconstruct_mask
from .metadata import ModelMetadata
from .nms import NMSConfig, suppress
from .types import Candidate, Detection, Embedding, Results, YoloTask

logger = logging.getLogger(__name__)

CXYWH_OFFSET = 4


@dataclass(frozen=True)
class YoloPostConfig:
    """
    Post-processing options.

    confs/kconfs are per-class / per-keypoint thresholds; shorter sequences
    are padded with their first value (a single value applies to all).
    """

    confs: Sequence[float] = (0.4,)
    kconfs: Sequence[float] = (0.5,)
    iou_threshold: float = 0.45
    # If False, skip NMS and return every decoded candidate.
    apply_nms: bool = True
    # If True, NMS is class-agnostic (reference behavior).
    # If False, runs per-class NMS then merges results by score.
    class_agnostic_nms: bool = True
    max_detections: Optional[int] = None
    # True: prediction slab is (A, 4 + nc + extra); False: (4 + nc + extra, A).
    anchors_first: bool = False
    # Explicit class count / names override model metadata.
    nc: Optional[int] = None
    names: Optional[Sequence[str]] = None
    # None keeps the soft float -> byte mask conversion; a value binarises to 0/255.
    mask_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("confs", "kconfs"):
            for v in getattr(self, name):
                if not (0.0 <= float(v) <= 1.0):
                    raise ConfigurationError(f"{name} values must be in [0, 1], got {v}")
        if not (0.0 <= self.iou_threshold <= 1.0):
            raise ConfigurationError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ConfigurationError(f"max_detections must be > 0, got {self.max_detections}")
        if self.nc is not None and self.nc <= 0:
            raise ConfigurationError(f"nc must be > 0, got {self.nc}")
        if self.mask_threshold is not None and not (0.0 <= self.mask_threshold <= 1.0):
            raise ConfigurationError(f"mask_threshold must be in [0, 1], got {self.mask_threshold}")


def broadcast_thresholds(values: Sequence[float], n: int) -> Tuple[float, ...]:
    """
    Stretch `values` to exactly `n` thresholds: truncate when longer, pad with
    the first value when shorter.
    """

    values = [float(v) for v in values]
    if n == 0:
        return ()
    if not values:
        raise ConfigurationError(f"Need at least one threshold to broadcast to {n} entries")
    if len(values) >= n:
        return tuple(values[:n])
    return tuple(values + [values[0]] * (n - len(values)))


def decode_anchors(
    slab: np.ndarray,
    *,
    nc: int,
    confs: Sequence[float],
    ratio: float,
    orig_size: Tuple[float, float],
    task: YoloTask = YoloTask.DETECT,
    nk: int = 0,
    kconfs: Sequence[float] = (),
    nm: int = 0,
    anchors_first: bool = False,
    names: Optional[Sequence[str]] = None,
) -> List[Candidate]:
    """
    Decode one image's prediction slab into candidate tuples.

    Every anchor whose best class score reaches that class's threshold becomes
    a Detection in original image pixels. Pose anchors carry their decoded
    keypoints, segment anchors their raw mask coefficients. Anchors with a
    non-finite score or box are rejected. The slab is not modified.

    Args:
        slab: (4 + nc + extra, A), or (A, 4 + nc + extra) when anchors_first
        confs: nc per-class thresholds
        ratio: letterbox gain, min(input_w / orig_w, input_h / orig_h)
        orig_size: (width, height) of the original image
    """

    p = np.asarray(slab)
    if p.ndim != 2:
        raise ShapeError(f"Expected a 2-D prediction slab per image, got shape {p.shape}")
    rows = p if anchors_first else p.T  # (A, C)

    extra = KPT_STEP * nk if task is YoloTask.POSE else nm if task is YoloTask.SEGMENT else 0
    need = CXYWH_OFFSET + nc + extra
    if len(confs) != nc:
        raise ConfigurationError(f"Got {len(confs)} class thresholds for nc={nc}; use broadcast_thresholds")
    if task is YoloTask.POSE and len(kconfs) != nk:
        raise ConfigurationError(f"Got {len(kconfs)} keypoint thresholds for nk={nk}; use broadcast_thresholds")
    if rows.shape[1] < need:
        raise ShapeError(
            f"Prediction rows have {rows.shape[1]} values, need at least {need} "
            f"(4 box + nc={nc} + {extra} task values); check anchors_first"
        )
    if rows.shape[0] == 0:
        return []

    width, height = float(orig_size[0]), float(orig_size[1])

    # thresholds compared in slab precision
    dtype = rows.dtype if np.issubdtype(rows.dtype, np.floating) else np.float32
    thresholds = np.asarray(confs, dtype=dtype)

    class_scores = rows[:, CXYWH_OFFSET : CXYWH_OFFSET + nc].astype(dtype, copy=False)
    finite_scores = np.where(np.isfinite(class_scores), class_scores, -np.inf)
    class_ids = np.argmax(finite_scores, axis=1)  # first max wins
    scores = finite_scores[np.arange(rows.shape[0]), class_ids]

    boxes = rows[:, :CXYWH_OFFSET].astype(np.float64)
    keep = np.isfinite(scores) & np.all(np.isfinite(boxes), axis=1) & (scores >= thresholds[class_ids])
    idx = np.nonzero(keep)[0]

    candidates: List[Candidate] = []
    for i in idx:
        x, y, w, h = cxcywh_to_xywh(*(boxes[i] / ratio))
        x = clamp(x, 0.0, width)
        y = clamp(y, 0.0, height)
        cls = int(class_ids[i])
        det = Detection(
            x=float(x),
            y=float(y),
            width=float(w),
            height=float(h),
            class_id=cls,
            confidence=float(scores[i]),
            label=names[cls] if names is not None else None,
        )

        kpts = None
        if task is YoloTask.POSE:
            kpts = decode_keypoints(rows[i, rows.shape[1] - extra :], nk, kconfs, ratio, width, height)

        coefs = None
        if task is YoloTask.SEGMENT:
            coefs = np.array(rows[i, rows.shape[1] - nm :], dtype=np.float32)

        candidates.append(Candidate(det, kpts, coefs))

    return candidates


OutputsLike = Union[np.ndarray, Sequence[np.ndarray]]


def split_outputs(outputs: OutputsLike) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Pick (predictions, prototypes) out of raw engine outputs. Engines order
    their outputs freely, so the 3-D array is taken as the predictions.
    """

    if isinstance(outputs, np.ndarray):
        return outputs, None
    arrays = [np.asarray(o) for o in outputs]
    if len(arrays) == 1:
        return arrays[0], None
    if len(arrays) != 2:
        raise ShapeError(f"Expected one or two output tensors, got {len(arrays)}")
    a, b = arrays
    if a.ndim == 3:
        return a, b
    if b.ndim == 3:
        return b, a
    raise ShapeError(f"No 3-D prediction tensor among outputs with shapes {a.shape} and {b.shape}")


class YoloPostprocessor:
    """
    Turns raw YOLO outputs into per-image `Results`.

    Supported tasks:
    - classify: (B, nc) scores, wrapped as embeddings
    - detect:   (B, 4 + nc, A)
    - pose:     (B, 4 + nc + 3 * nk, A)
    - segment:  (B, 4 + nc + nm, A) plus prototypes (B, nm, ph, pw)

    (The anchor axes are swapped when `anchors_first` is set.)

    Task, class names, nc and nk are resolved once here from explicit
    arguments, the config and model metadata, in that order, so
    configuration problems surface before any decoding.
    """

    def __init__(
        self,
        cfg: YoloPostConfig = YoloPostConfig(),
        *,
        task: Union[YoloTask, str, None] = None,
        nk: Optional[int] = None,
        nm: Optional[int] = None,
        input_size: Optional[Tuple[int, int]] = None,
        metadata: Optional[ModelMetadata] = None,
    ):
        self.cfg = cfg
        meta = metadata or ModelMetadata()

        if task is None:
            task = meta.task
            if task is None:
                logger.warning("No task given and none in model metadata; assuming 'detect'")
                task = YoloTask.DETECT
        self.task = YoloTask.parse(task)

        self.names, self.nc = self._resolve_classes(cfg, meta)
        self.nk = int(nk) if nk is not None else (meta.nk if self.task is YoloTask.POSE else 0)
        self.nm = nm
        self.input_size = input_size

        if self.task is YoloTask.POSE and self.nk <= 0:
            raise ConfigurationError("Pose task needs nk > 0 (pass nk= or provide `kpt_shape` metadata)")

        self.confs = broadcast_thresholds(cfg.confs, self.nc)
        self.kconfs = broadcast_thresholds(cfg.kconfs, self.nk)
        self.nms_cfg = NMSConfig(
            iou_threshold=cfg.iou_threshold,
            max_detections=cfg.max_detections,
            class_agnostic=cfg.class_agnostic_nms,
        )

        logger.info(
            "Postprocessor ready: task=%s nc=%d nk=%d nm=%s", self.task.value, self.nc, self.nk, self.nm
        )

    def _resolve_classes(self, cfg: YoloPostConfig, meta: ModelMetadata) -> Tuple[Optional[List[str]], int]:
        names = list(cfg.names) if cfg.names is not None else meta.names

        if cfg.nc is not None:
            if names is None:
                names = [str(i) for i in range(cfg.nc)]
            elif len(names) != cfg.nc:
                raise ConfigurationError(
                    f"nc={cfg.nc} does not match the {len(names)} class names provided"
                )
            return names, cfg.nc

        if names is not None:
            return names, len(names)

        if self.task is YoloTask.CLASSIFY:
            return None, 0

        raise ConfigurationError(
            "Cannot resolve the class count: pass `nc` or `names` explicitly, or use a model with `names` metadata"
        )

    def process(
        self,
        outputs: OutputsLike,
        orig_sizes: Sequence[Tuple[int, int]],
        ratios: Optional[Sequence[float]] = None,
    ) -> List[Results]:
        """
        Convert a batch of raw outputs into one `Results` per image.

        Args:
            outputs: engine outputs, a single array or one/two arrays
            orig_sizes: (width, height) of each original image
            ratios: letterbox gain per image; computed from `input_size`
                when omitted
        """

        preds, protos = split_outputs(outputs)

        if self.task is YoloTask.CLASSIFY:
            return [Results(embedding=Embedding(np.array(row), self.names)) for row in preds]

        if preds.ndim != 3:
            raise ShapeError(f"Expected predictions shaped (B, C, A) or (B, A, C), got {preds.shape}")
        if len(orig_sizes) != preds.shape[0]:
            raise ShapeError(f"Got {len(orig_sizes)} image sizes for a batch of {preds.shape[0]}")

        nm = 0
        if self.task is YoloTask.SEGMENT:
            nm = self._check_protos(protos, preds.shape[0])

        ratios = self._resolve_ratios(orig_sizes, ratios)

        return [
            self._process_image(
                preds[b],
                protos[b] if protos is not None and nm else None,
                nm,
                orig_sizes[b],
                ratios[b],
            )
            for b in range(preds.shape[0])
        ]

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _check_protos(self, protos: Optional[np.ndarray], batch: int) -> int:
        if protos is None:
            raise ShapeError("Segment task needs a prototype tensor (B, nm, h, w) as second output")
        if protos.ndim != 4 or protos.shape[0] != batch:
            raise ShapeError(f"Expected prototypes shaped ({batch}, nm, h, w), got {protos.shape}")
        nm = int(protos.shape[1])
        if nm <= 0:
            raise ShapeError(f"Prototype tensor has no mask channels: {protos.shape}")
        if self.nm is not None and nm != self.nm:
            raise ShapeError(f"Prototype tensor has nm={nm}, model declares nm={self.nm}")
        return nm

    def _resolve_ratios(
        self, orig_sizes: Sequence[Tuple[int, int]], ratios: Optional[Sequence[float]]
    ) -> List[float]:
        if ratios is not None:
            if len(ratios) != len(orig_sizes):
                raise ShapeError(f"Got {len(ratios)} ratios for {len(orig_sizes)} images")
            return [float(r) for r in ratios]
        if self.input_size is None:
            raise ConfigurationError("Pass `ratios` or construct the postprocessor with `input_size`")
        in_w, in_h = self.input_size
        return [scale_ratio(in_w, in_h, w, h) for w, h in orig_sizes]

    def _process_image(
        self,
        slab: np.ndarray,
        proto: Optional[np.ndarray],
        nm: int,
        orig_size: Tuple[int, int],
        ratio: float,
    ) -> Results:
        candidates = decode_anchors(
            slab,
            nc=self.nc,
            confs=self.confs,
            ratio=ratio,
            orig_size=orig_size,
            task=self.task,
            nk=self.nk,
            kconfs=self.kconfs,
            nm=nm,
            anchors_first=self.cfg.anchors_first,
            names=self.names,
        )
        n_decoded = len(candidates)

        if self.cfg.apply_nms:
            candidates = suppress(candidates, self.nms_cfg)

        logger.debug("Image %s: %d candidates decoded, %d kept", orig_size, n_decoded, len(candidates))

        width, height = int(orig_size[0]), int(orig_size[1])
        detections = [c.detection for c in candidates]
        keypoints = None
        masks = None

        if self.task is YoloTask.POSE:
            keypoints = [c.keypoints for c in candidates]
        if self.task is YoloTask.SEGMENT:
            masks = [
                reconstruct_mask(c.coefficients, proto, c.detection, width, height, self.cfg.mask_threshold)
                for c in candidates
            ]

        return Results(detections=detections, keypoints=keypoints, masks=masks)
