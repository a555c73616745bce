from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import Detection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: int = 300


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (N, 4) xyxy boxes. Zero where the union has no area.
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    safe = np.where(union > 0, union, 1.0)
    return np.where(union > 0, inter / safe, 0.0)


def box_iou(a: Sequence[float], b: Sequence[float]) -> float:
    return float(iou_one_to_many(np.asarray(a, dtype=np.float64), np.asarray([b], dtype=np.float64))[0])


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    class_ids: Optional[np.ndarray] = None,
    cfg: NMSConfig = NMSConfig(),
) -> np.ndarray:
    """
    Greedy per-class NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Equal scores keep their input order. Boxes of different classes never
    suppress each other; `class_ids=None` treats everything as one class.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] == 0 or cfg.max_detections <= 0:
        return np.empty((0,), dtype=np.int64)
    if class_ids is None:
        class_ids = np.zeros(scores.shape[0], dtype=np.int64)
    else:
        class_ids = np.asarray(class_ids).reshape(-1)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0 and len(keep) < cfg.max_detections:
        i = order[0]
        keep.append(int(i))

        rest = order[1:]
        iou = iou_one_to_many(boxes[i], boxes[rest])
        suppressed = (iou > cfg.iou_threshold) & (class_ids[rest] == class_ids[i])
        order = rest[~suppressed]

    return np.array(keep, dtype=np.int64)


def suppress(
    detections: Sequence[Detection],
    iou_threshold: float = 0.45,
    max_output: int = 300,
) -> List[Detection]:
    """
    `nms` over `Detection` records; returns kept detections by descending score.
    """

    if not detections:
        return []
    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.score for d in detections], dtype=np.float64)
    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)
    keep = nms(boxes, scores, class_ids, NMSConfig(iou_threshold=iou_threshold, max_detections=max_output))
    return [detections[i] for i in keep]
