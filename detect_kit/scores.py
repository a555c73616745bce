"""
Confidence decoding for canonical layouts.

Some exports emit logits, others probabilities, and nothing in the graph says
which. Each score vector is checked on its own: any value outside [0, 1] means
the whole vector is still pre-activation and gets a logistic transform.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import EmptyClassSpace
from .layout import CanonicalLayout, CombinedLayout, LayoutKind, SplitLayout


class Activation(Enum):
    RAW = "raw"
    PROBABILITY = "probability"


def sigmoid(x: np.ndarray) -> np.ndarray:
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=np.float64)))


def detect_activation(values: np.ndarray) -> Activation:
    v = np.asarray(values)
    if v.size and bool(np.any((v < 0.0) | (v > 1.0))):
        return Activation.RAW
    return Activation.PROBABILITY


def maybe_sigmoid(values: np.ndarray) -> np.ndarray:
    """
    Probabilities for one score vector; returned unchanged if already in [0, 1].
    """

    v = np.asarray(values, dtype=np.float64)
    if detect_activation(v) is Activation.RAW:
        return sigmoid(v)
    return v


def maybe_sigmoid_rows(matrix: np.ndarray) -> np.ndarray:
    """
    Row-wise `maybe_sigmoid` for an (N, C) matrix.
    """

    m = np.asarray(matrix, dtype=np.float64)
    if m.size == 0:
        return m
    raw_rows = np.any((m < 0.0) | (m > 1.0), axis=1)
    if not raw_rows.any():
        return m
    return np.where(raw_rows[:, None], sigmoid(m), m)


def maybe_sigmoid_values(values: np.ndarray) -> np.ndarray:
    """
    Element-wise variant used for objectness: each value is checked alone.
    """

    v = np.asarray(values, dtype=np.float64)
    raw = (v < 0.0) | (v > 1.0)
    if not raw.any():
        return v
    return np.where(raw, sigmoid(v), v)


@dataclass(frozen=True)
class CombinedFields:
    has_objectness: bool
    class_count: int

    @property
    def class_start(self) -> int:
        return 5 if self.has_objectness else 4


def resolve_combined_fields(fields_per_box: int, num_class_names: int = 0) -> CombinedFields:
    """
    Decide whether a combined row carries an objectness column.

    Size alone guesses objectness for anything wider than 5 fields; a class-name
    table, when its length matches exactly, overrides the guess.
    """

    no = int(fields_per_box)
    has_obj = no > 5
    if num_class_names > 0:
        if no == 5 + num_class_names:
            has_obj = True
        elif no == 4 + num_class_names:
            has_obj = False
    class_count = no - (5 if has_obj else 4)
    if class_count <= 0:
        raise EmptyClassSpace(f"No class columns in rows of {no} fields.")
    return CombinedFields(has_objectness=has_obj, class_count=class_count)


@dataclass(frozen=True)
class Candidates:
    boxes: np.ndarray  # (M, 4) cx, cy, w, h in input space
    scores: np.ndarray  # (M,)
    class_ids: np.ndarray  # (M,)

    @classmethod
    def empty(cls) -> "Candidates":
        return cls(
            boxes=np.zeros((0, 4), dtype=np.float64),
            scores=np.zeros((0,), dtype=np.float64),
            class_ids=np.zeros((0,), dtype=np.int64),
        )

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    def select(self, mask: np.ndarray) -> "Candidates":
        return Candidates(boxes=self.boxes[mask], scores=self.scores[mask], class_ids=self.class_ids[mask])


def _best_class(probs: np.ndarray):
    class_ids = np.argmax(probs, axis=1)
    best = probs[np.arange(probs.shape[0]), class_ids]
    return class_ids.astype(np.int64), best


def decode_split(layout: SplitLayout, score_threshold: float) -> Candidates:
    if layout.num_boxes == 0 or layout.num_classes == 0:
        return Candidates.empty()

    probs = maybe_sigmoid_rows(layout.scores)
    class_ids, best = _best_class(probs)
    keep = best >= score_threshold
    return Candidates(
        boxes=np.asarray(layout.boxes, dtype=np.float64)[keep],
        scores=best[keep],
        class_ids=class_ids[keep],
    )


def decode_combined(layout: CombinedLayout, score_threshold: float, num_class_names: int = 0) -> Candidates:
    """
    Raises `EmptyClassSpace` when rows are too narrow to hold any class score.
    """

    fields = resolve_combined_fields(layout.fields_per_box, num_class_names)
    if layout.num_boxes == 0:
        return Candidates.empty()

    data = layout.data
    start = fields.class_start
    class_probs = maybe_sigmoid_rows(data[:, start : start + fields.class_count])
    if fields.has_objectness:
        objectness = maybe_sigmoid_values(data[:, 4])
        class_probs = objectness[:, None] * class_probs

    class_ids, best = _best_class(class_probs)
    keep = best >= score_threshold
    return Candidates(
        boxes=np.asarray(data[:, 0:4], dtype=np.float64)[keep],
        scores=best[keep],
        class_ids=class_ids[keep],
    )


def decode_scores(layout: CanonicalLayout, score_threshold: float, num_class_names: int = 0) -> Candidates:
    if layout.kind is LayoutKind.SPLIT:
        return decode_split(layout, score_threshold)  # type: ignore[arg-type]
    return decode_combined(layout, score_threshold, num_class_names)  # type: ignore[arg-type]
