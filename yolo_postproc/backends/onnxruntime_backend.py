from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected input name if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None


def _static_dim(dim: Any) -> int:
    # Dynamic axes come back as strings or None.
    return dim if isinstance(dim, int) else -1


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime engine.

    Expects a letterboxed NCHW float32 blob, typically shaped (B, 3, H, W), and
    returns every model output (predictions, and prototypes for segmentation
    exports) as NumPy arrays.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        inp = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or inp.name
        self.input_shape = tuple(_static_dim(d) for d in inp.shape)
        self.output_names = [o.name for o in self.session.get_outputs()]
        logger.info("ONNX Runtime session for %s (providers=%s)", self.model_path, self.providers_in_use)

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def input_size(self) -> Tuple[int, int]:
        """(width, height) of the model input; -1 for dynamic axes."""
        return self.input_shape[3], self.input_shape[2]

    @property
    def output_shapes(self) -> List[Tuple[int, ...]]:
        return [tuple(_static_dim(d) for d in o.shape) for o in self.session.get_outputs()]

    def metadata(self) -> Dict[str, str]:
        """Custom string metadata embedded at export time (task, names, kpt_shape, ...)."""
        return dict(self.session.get_modelmeta().custom_metadata_map)

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> List[np.ndarray]:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        return list(self.session.run(self.output_names, inputs))
