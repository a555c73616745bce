from typing import Tuple

import numpy as np

from .errors import InvalidDimensions
from .types import LetterboxMeta


NEUTRAL_GRAY = (114, 114, 114)


def _round_half_up(x: float) -> int:
    return int(np.floor(x + 0.5))


def compute_letterbox(frame_w: int, frame_h: int, input_size: int) -> LetterboxMeta:
    """
    Scale/pad that fits a `frame_w` x `frame_h` frame inside an `input_size` square.

    The scaled frame is centered; odd leftover pixels go to the right/bottom.
    """

    if frame_w <= 0 or frame_h <= 0:
        raise InvalidDimensions(f"Frame size must be positive, got {frame_w}x{frame_h}.")
    if input_size <= 0:
        raise InvalidDimensions(f"Input size must be positive, got {input_size}.")

    scale = min(input_size / frame_w, input_size / frame_h)
    # Halves round up, not to even. A 1px floor keeps extreme aspect ratios resizable.
    new_w = max(1, _round_half_up(frame_w * scale))
    new_h = max(1, _round_half_up(frame_h * scale))
    pad_x = (input_size - new_w) // 2
    pad_y = (input_size - new_h) // 2

    return LetterboxMeta(
        scale=float(scale),
        pad_x=float(pad_x),
        pad_y=float(pad_y),
        input_size=int(input_size),
        new_w=new_w,
        new_h=new_h,
    )


def letterbox(
    image: np.ndarray,
    input_size: int = 640,
    color: Tuple[int, int, int] = NEUTRAL_GRAY,
) -> Tuple[np.ndarray, LetterboxMeta]:
    """
    Resize and pad an (H, W, 3) image into an `input_size` square.

    Returns:
        padded: letterboxed image, same channel order as `image`
        meta: scale and left/top padding applied
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape") or image.ndim != 3:
        raise InvalidDimensions(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")

    h, w = image.shape[:2]
    meta = compute_letterbox(w, h, input_size)

    if (w, h) != (meta.new_w, meta.new_h):
        image = cv2.resize(image, (meta.new_w, meta.new_h), interpolation=cv2.INTER_LINEAR)

    left = int(meta.pad_x)
    top = int(meta.pad_y)
    right = input_size - meta.new_w - left
    bottom = input_size - meta.new_h - top
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, meta


def to_input_tensor(image_bgr: np.ndarray) -> np.ndarray:
    """
    Letterboxed BGR uint8 image -> planar RGB float32 blob of shape (1, 3, S, S) in [0, 1].
    """

    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = image_bgr[:, :, ::-1].astype(np.float32) / 255.0
    blob = np.transpose(blob, (2, 0, 1))[None, ...]
    return np.ascontiguousarray(blob)


def preprocess(
    image_bgr: np.ndarray,
    input_size: int = 640,
    color: Tuple[int, int, int] = NEUTRAL_GRAY,
) -> Tuple[np.ndarray, LetterboxMeta]:
    padded, meta = letterbox(image_bgr, input_size=input_size, color=color)
    return to_input_tensor(padded), meta


def scale_boxes_forward(boxes_xyxy: np.ndarray, meta: LetterboxMeta) -> np.ndarray:
    """
    Map frame-space xyxy boxes into input-tensor space (inverse of `coords.unletterbox`).
    """

    out = np.array(boxes_xyxy, dtype=np.float64, copy=True).reshape(-1, 4)
    out[:, [0, 2]] = out[:, [0, 2]] * meta.scale + meta.pad_x
    out[:, [1, 3]] = out[:, [1, 3]] * meta.scale + meta.pad_y
    return out
