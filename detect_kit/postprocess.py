from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .coords import map_to_frame
from .errors import EmptyClassSpace, InvalidDimensions
from .layout import CanonicalLayout, normalize_outputs
from .nms import NMSConfig, nms
from .scores import Candidates, decode_scores
from .types import Detection, LetterboxMeta


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeConfig:
    """
    Thresholds for turning raw outputs into final detections.
    """

    score_threshold: float = 0.25
    iou_threshold: float = 0.45
    max_detections: int = 300
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError("score_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")


class DetectionDecoder:
    """
    Raw named outputs of one frame -> final detections in frame pixels.

    Supported outputs (per image, no configuration needed):
    - combined (1, N, no), (1, no, N) or (N, no): [cx, cy, w, h, (obj), class_scores...]
    - split boxes (1, N, 4) / (1, 4, N) + scores (1, N, nc) / (1, nc, N)

    Scores may be logits or probabilities. The decoder keeps no state between
    frames and never writes into the buffers it is given.
    """

    def __init__(self, cfg: DecodeConfig = DecodeConfig(), class_names: Optional[Sequence[str]] = None):
        self.cfg = cfg
        self.class_names = list(class_names) if class_names else []

    def decode(
        self,
        outputs: Mapping[str, Any],
        frame_size: Tuple[int, int],
        meta: LetterboxMeta,
    ) -> List[Detection]:
        """
        Args:
            outputs: output name -> array, or (flat data, shape) pair
            frame_size: (width, height) of the source frame
            meta: letterbox applied when building the input tensor
        """

        frame_w, frame_h = frame_size
        if frame_w <= 0 or frame_h <= 0:
            raise InvalidDimensions(f"Frame size must be positive, got {frame_w}x{frame_h}.")

        layout = normalize_outputs(outputs)
        candidates = self._candidates(layout)
        if len(candidates) == 0:
            return []

        # Optional class filter
        if self.cfg.class_ids is not None:
            candidates = candidates.select(np.isin(candidates.class_ids, np.array(list(self.cfg.class_ids))))
            if len(candidates) == 0:
                return []

        boxes_xyxy, valid = map_to_frame(candidates.boxes, meta, frame_size)
        boxes_xyxy = boxes_xyxy[valid]
        scores = candidates.scores[valid]
        class_ids = candidates.class_ids[valid]
        if boxes_xyxy.shape[0] == 0:
            return []

        keep = nms(
            boxes_xyxy,
            scores,
            class_ids,
            NMSConfig(iou_threshold=self.cfg.iou_threshold, max_detections=self.cfg.max_detections),
        )

        return [
            Detection(
                x1=float(boxes_xyxy[i, 0]),
                y1=float(boxes_xyxy[i, 1]),
                x2=float(boxes_xyxy[i, 2]),
                y2=float(boxes_xyxy[i, 3]),
                score=float(scores[i]),
                class_id=int(class_ids[i]),
            )
            for i in keep
        ]

    def _candidates(self, layout: CanonicalLayout) -> Candidates:
        try:
            return decode_scores(layout, self.cfg.score_threshold, len(self.class_names))
        except EmptyClassSpace as exc:
            logger.debug("no detections: %s", exc)
            return Candidates.empty()
