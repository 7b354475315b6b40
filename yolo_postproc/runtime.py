from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .metadata import ModelMetadata
from .postprocess import YoloPostConfig, YoloPostprocessor
from .types import Results, YoloTask

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


_ROOT_MARKERS = ("pyproject.toml", "setup.py", ".git", "requirements.txt")


def find_project_root(start: Optional[PathLike] = None, markers: Sequence[str] = _ROOT_MARKERS) -> Path:
    """
    Nearest directory at or above `start` (default: cwd) holding one of
    `markers`. Falls back to `start` itself when none is found.
    """

    here = Path.cwd() if start is None else Path(start)
    here = here.resolve()
    if here.is_file():
        here = here.parent

    return next(
        (d for d in (here, *here.parents) if any((d / m).exists() for m in markers)),
        here,
    )


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Absolute model path. Relative paths are anchored at `root`, or at the
    project root when `root` is "auto"/None.
    """

    candidate = Path(path)
    if candidate.is_absolute():
        return candidate

    anchor = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (anchor / candidate).resolve()


def _proto_channels(output_shapes: Sequence[Tuple[int, ...]]) -> Optional[int]:
    for shape in output_shapes:
        if len(shape) == 4 and shape[1] > 0:
            return int(shape[1])
    return None


class YoloModel:
    """
    Inference engine + post-processing.

    `engine` is any object with `infer(blob) -> list[np.ndarray]`. If it also
    exposes `metadata()`, `input_size` and `output_shapes` (as
    `OnnxRuntimeBackend` does) they are used to resolve task, names, nk, nm
    and letterbox ratios. The blob must already be letterboxed, top-left
    aligned, to the model input size.
    """

    def __init__(
        self,
        engine: Any,
        post_cfg: YoloPostConfig = YoloPostConfig(),
        *,
        task: Union[YoloTask, str, None] = None,
        nk: Optional[int] = None,
        input_size: Optional[Tuple[int, int]] = None,
    ):
        self.engine = engine

        entries: Dict[str, str] = engine.metadata() if hasattr(engine, "metadata") else {}
        self.metadata = ModelMetadata(entries)

        if input_size is None:
            input_size = getattr(engine, "input_size", None)
            if input_size is not None and min(input_size) <= 0:
                input_size = None
        self.input_size = input_size

        nm = _proto_channels(getattr(engine, "output_shapes", ()))
        self.post = YoloPostprocessor(
            post_cfg,
            task=task,
            nk=nk,
            nm=nm,
            input_size=self.input_size,
            metadata=self.metadata,
        )

    @property
    def task(self) -> YoloTask:
        return self.post.task

    @property
    def names(self) -> Optional[List[str]]:
        return self.post.names

    def __call__(
        self,
        blob: np.ndarray,
        orig_sizes: Sequence[Tuple[int, int]],
        ratios: Optional[Sequence[float]] = None,
    ) -> List[Results]:
        outputs = self.engine.infer(blob)
        return self.post.process(outputs, orig_sizes, ratios)


def load_model(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    post_cfg: YoloPostConfig = YoloPostConfig(),
    task: Union[YoloTask, str, None] = None,
    nk: Optional[int] = None,
    input_size: Optional[Tuple[int, int]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
) -> YoloModel:
    """
    Create a model for weights on disk.

    Typical usage:
        model = load_model("models/yolov8n-seg.onnx")  # resolves from project root by default
        results = model(blob, orig_sizes=[(w, h)])

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime", or None to infer from extension
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
        nk: keypoint count, overriding `kpt_shape` metadata
        input_size: (width, height) the blob is letterboxed to; required to
            derive ratios when the exported input axes are dynamic
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        ort_backend = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(providers=onnx_providers, input_name=onnx_input_name),
        )
        return YoloModel(ort_backend, post_cfg, task=task, nk=nk, input_size=input_size)

    raise ValueError(f"Unsupported backend: {backend!r}")
