"""
YOLO output decoding for classification, detection, pose and segmentation
exports.

Framework-agnostic: works with NumPy arrays emitted by ONNX Runtime or PyTorch
tensors converted to NumPy. No dependencies beyond NumPy, plus OpenCV for
mask resizing.
"""

from .errors import ConfigurationError, ShapeError, UnsupportedTaskError, YoloPostprocessError
from .types import Candidate, Detection, Embedding, Keypoint, Results, YoloTask
from .geometry import box_iou, scale_ratio
from .nms import NMSConfig, nms, suppress
from .keypoints import decode_keypoints
from .masks import reconstruct_mask
from .metadata import ModelMetadata, load_metadata_file, parse_kpt_shape, parse_names
from .postprocess import YoloPostConfig, YoloPostprocessor, broadcast_thresholds, decode_anchors
from .runtime import YoloModel, find_project_root, load_model, resolve_path

__all__ = [
    "ConfigurationError",
    "ShapeError",
    "UnsupportedTaskError",
    "YoloPostprocessError",
    "Candidate",
    "Detection",
    "Embedding",
    "Keypoint",
    "Results",
    "YoloTask",
    "box_iou",
    "scale_ratio",
    "NMSConfig",
    "nms",
    "suppress",
    "decode_keypoints",
    "reconstruct_mask",
    "ModelMetadata",
    "load_metadata_file",
    "parse_kpt_shape",
    "parse_names",
    "YoloPostConfig",
    "YoloPostprocessor",
    "broadcast_thresholds",
    "decode_anchors",
    "YoloModel",
    "find_project_root",
    "load_model",
    "resolve_path",
]
