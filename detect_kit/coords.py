from typing import Tuple

import numpy as np

from .types import LetterboxMeta


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    b = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    cx, cy, w_box, h_box = b.T
    x1 = cx - w_box / 2
    y1 = cy - h_box / 2
    x2 = cx + w_box / 2
    y2 = cy + h_box / 2
    return np.stack([x1, y1, x2, y2], axis=1)


def unletterbox(boxes_xyxy: np.ndarray, meta: LetterboxMeta) -> np.ndarray:
    """
    Input-tensor xyxy -> frame xyxy. Padding is removed before dividing by the scale.
    """

    out = np.array(boxes_xyxy, dtype=np.float64, copy=True).reshape(-1, 4)
    out[:, [0, 2]] = (out[:, [0, 2]] - meta.pad_x) / meta.scale
    out[:, [1, 3]] = (out[:, [1, 3]] - meta.pad_y) / meta.scale
    return out


def clamp_to_frame(boxes_xyxy: np.ndarray, frame_size: Tuple[int, int]) -> np.ndarray:
    frame_w, frame_h = frame_size
    out = np.array(boxes_xyxy, dtype=np.float64, copy=True).reshape(-1, 4)
    out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0, frame_w)
    out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0, frame_h)
    return out


def map_to_frame(
    boxes_cxcywh: np.ndarray,
    meta: LetterboxMeta,
    frame_size: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Input-space center boxes -> clamped frame-space corner boxes.

    Returns:
        boxes: (N, 4) xyxy for every input row
        valid: (N,) bool, False where the clamped box has no area
    """

    boxes = clamp_to_frame(unletterbox(cxcywh_to_xyxy(boxes_cxcywh), meta), frame_size)
    valid = (boxes[:, 2] > boxes[:, 0]) & (boxes[:, 3] > boxes[:, 1])
    return boxes, valid
