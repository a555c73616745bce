"""
Decode and de-duplicate object-detector outputs.

Framework-agnostic: takes the named NumPy outputs of any forward pass, works
out their layout from shapes alone, and returns boxes in source-frame pixels.
OpenCV is only needed for letterboxing and drawing; ONNX Runtime only for
`load_pipeline`.
"""

from .types import Detection, FrameResult, LetterboxMeta
from .errors import DecodeError, EmptyClassSpace, InvalidDimensions, UnsupportedTensorShape
from .letterbox import compute_letterbox, letterbox, preprocess, to_input_tensor
from .layout import CombinedLayout, LayoutKind, SplitLayout, TensorShape, normalize_outputs
from .scores import Activation, decode_scores, detect_activation, maybe_sigmoid
from .coords import map_to_frame
from .nms import NMSConfig, nms, suppress
from .postprocess import DecodeConfig, DetectionDecoder
from .config import LetterboxConfig, PipelineConfig, load_pipeline_config
from .runtime import DetectionPipeline, load_pipeline, find_project_root, resolve_path
from .metadata import class_name, load_class_names
from .visualize import draw_detections, format_detection_list

__all__ = [
    "Detection",
    "FrameResult",
    "LetterboxMeta",
    "DecodeError",
    "EmptyClassSpace",
    "InvalidDimensions",
    "UnsupportedTensorShape",
    "compute_letterbox",
    "letterbox",
    "preprocess",
    "to_input_tensor",
    "CombinedLayout",
    "LayoutKind",
    "SplitLayout",
    "TensorShape",
    "normalize_outputs",
    "Activation",
    "decode_scores",
    "detect_activation",
    "maybe_sigmoid",
    "map_to_frame",
    "NMSConfig",
    "nms",
    "suppress",
    "DecodeConfig",
    "DetectionDecoder",
    "LetterboxConfig",
    "PipelineConfig",
    "load_pipeline_config",
    "DetectionPipeline",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "class_name",
    "load_class_names",
    "draw_detections",
    "format_detection_list",
]
