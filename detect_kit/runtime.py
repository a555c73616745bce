from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .config import LetterboxConfig
from .errors import InvalidDimensions
from .letterbox import letterbox, to_input_tensor
from .postprocess import DecodeConfig, DetectionDecoder
from .types import FrameResult, LetterboxMeta


PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], Mapping[str, Any]]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, so `models/...` paths work from any working directory.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    frame_size: Tuple[int, int]
    meta: LetterboxMeta


class DetectionPipeline:
    """
    Per-frame pipeline: letterbox -> inference -> decode.

    Expects BGR images (OpenCV-style) as `np.ndarray`. `infer_fn` receives the
    (1, 3, S, S) blob and returns the model outputs keyed by name. The pipeline
    holds only immutable configuration, so independent frames may be decoded
    from several threads as long as `infer_fn` allows it.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        letterbox_cfg: LetterboxConfig = LetterboxConfig(),
        decode_cfg: DecodeConfig = DecodeConfig(),
        class_names: Optional[Sequence[str]] = None,
    ):
        self._infer_fn = infer_fn
        self.backend = backend
        self.backend_name = backend_name
        self.letterbox_cfg = letterbox_cfg
        self.decoder = DetectionDecoder(decode_cfg, class_names=class_names)

    @property
    def class_names(self) -> Sequence[str]:
        return self.decoder.class_names

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise InvalidDimensions(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        orig_h, orig_w = image_bgr.shape[:2]
        img, meta = letterbox(image_bgr, input_size=self.letterbox_cfg.input_size, color=self.letterbox_cfg.color)
        return PreprocessResult(blob=to_input_tensor(img), frame_size=(orig_w, orig_h), meta=meta)

    def infer(self, blob: np.ndarray) -> Mapping[str, Any]:
        return self._infer_fn(blob)

    def decode(self, outputs: Mapping[str, Any], prep: PreprocessResult) -> FrameResult:
        t0 = time.perf_counter()
        detections = self.decoder.decode(outputs, prep.frame_size, prep.meta)
        return FrameResult(detections=detections, decode_ms=(time.perf_counter() - t0) * 1000.0)

    def run(self, image_bgr: np.ndarray) -> FrameResult:
        t0 = time.perf_counter()
        prep = self.preprocess(image_bgr)
        t1 = time.perf_counter()
        outputs = self.infer(prep.blob)
        t2 = time.perf_counter()
        result = self.decode(outputs, prep)
        result.preprocess_ms = (t1 - t0) * 1000.0
        result.inference_ms = (t2 - t1) * 1000.0
        return result

    def __call__(self, image_bgr: np.ndarray):
        return self.run(image_bgr).detections


def load_pipeline(
    model_path: PathLike,
    *,
    root: Optional[PathLike] = "auto",
    letterbox_cfg: LetterboxConfig = LetterboxConfig(),
    decode_cfg: DecodeConfig = DecodeConfig(),
    class_names: Optional[Sequence[str]] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_names: Optional[Sequence[str]] = None,
) -> DetectionPipeline:
    """
    Create a pipeline for an exported `.onnx` detector on disk.

    Typical usage:
        pipe = load_pipeline("models/best.onnx", class_names=load_class_names("models/classes.json"))

    Args:
        model_path: path to the ONNX model; relative paths resolve against project root by default
        root: base directory for resolving relative model paths ("auto" uses best-effort project root)
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    resolved = resolve_path(model_path, root=root)
    if resolved.suffix.lower() != ".onnx":
        raise ValueError(f"Expected an .onnx model, got '{resolved.name}'.")

    ort_backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_names=onnx_output_names,
        ),
    )
    return DetectionPipeline(
        ort_backend.infer,
        backend=ort_backend,
        backend_name="onnxruntime",
        letterbox_cfg=letterbox_cfg,
        decode_cfg=decode_cfg,
        class_names=class_names,
    )
