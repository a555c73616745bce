"""
Output-tensor layout normalization.

Exports disagree on axis order and on whether boxes and class scores come out
as one tensor or two. Everything here turns the named outputs of a forward
pass into one of two canonical, row-major layouts:

- `CombinedLayout`: (N, no) rows of [cx, cy, w, h, (obj), class_scores...]
- `SplitLayout`:    boxes (N, 4) as [cx, cy, w, h] and scores (N, nc)

Raw buffers are never written to; every transpose returns a new array.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import UnsupportedTensorShape


logger = logging.getLogger(__name__)

MAX_RANK = 4

# Trailing dim of a [1, A, B] combined tensor is read as fields-per-box only in this range.
MIN_FIELDS_PER_BOX = 6
MAX_FIELDS_PER_BOX = 4096


@dataclass(frozen=True)
class TensorShape:
    dims: Tuple[int, ...]

    def __post_init__(self) -> None:
        if not 1 <= len(self.dims) <= MAX_RANK:
            raise UnsupportedTensorShape(f"Unsupported tensor rank {len(self.dims)} (shape {self.dims}).")
        if any(int(d) < 0 for d in self.dims):
            raise UnsupportedTensorShape(f"Negative dimension in shape {self.dims}.")

    @classmethod
    def of(cls, dims: Iterable[int]) -> "TensorShape":
        return cls(tuple(int(d) for d in dims))

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def size(self) -> int:
        return int(np.prod(self.dims, dtype=np.int64))

    def dim(self, index: int) -> int:
        if not 0 <= index < self.rank:
            raise UnsupportedTensorShape(f"Axis {index} out of range for shape {self}.")
        return self.dims[index]

    def __str__(self) -> str:
        return "x".join(str(d) for d in self.dims)


@dataclass(frozen=True)
class OutputTensor:
    name: str
    data: np.ndarray  # flat
    shape: TensorShape

    @classmethod
    def from_value(cls, name: str, value: Any) -> "OutputTensor":
        """
        Accepts an `np.ndarray` (shape taken from the array) or a `(data, shape)` pair.
        """

        if isinstance(value, OutputTensor):
            return value
        if isinstance(value, tuple) and len(value) == 2:
            data, dims = value
            shape = TensorShape.of(dims)
            flat = np.asarray(data, dtype=np.float64).reshape(-1)
        else:
            arr = np.asarray(value, dtype=np.float64)
            shape = TensorShape.of(arr.shape)
            flat = arr.reshape(-1)
        if flat.size != shape.size:
            raise UnsupportedTensorShape(
                f"Output '{name}' has {flat.size} values but shape {shape} needs {shape.size}."
            )
        return cls(name=name, data=flat, shape=shape)

    def reshaped(self, *dims: int) -> np.ndarray:
        return self.data.reshape(dims)


class LayoutKind(Enum):
    COMBINED = "combined"
    SPLIT = "split"


@dataclass(frozen=True)
class CombinedLayout:
    data: np.ndarray  # (N, no)

    kind = LayoutKind.COMBINED

    @property
    def num_boxes(self) -> int:
        return int(self.data.shape[0])

    @property
    def fields_per_box(self) -> int:
        return int(self.data.shape[1])


@dataclass(frozen=True)
class SplitLayout:
    boxes: np.ndarray  # (N, 4)
    scores: np.ndarray  # (N, nc)

    kind = LayoutKind.SPLIT

    @property
    def num_boxes(self) -> int:
        return int(self.boxes.shape[0])

    @property
    def num_classes(self) -> int:
        return int(self.scores.shape[1])


CanonicalLayout = Union[CombinedLayout, SplitLayout]


def transpose2(data: np.ndarray, rows: int, cols: int) -> np.ndarray:
    """
    Row-major (rows, cols) buffer -> new contiguous (cols, rows) array.
    """

    return np.ascontiguousarray(np.asarray(data).reshape(rows, cols).T)


def _raw_dims(value: Any) -> Tuple[int, ...]:
    """
    Shape of an output without validating it; used only to shortlist tensors.
    """

    if isinstance(value, OutputTensor):
        return value.shape.dims
    if isinstance(value, tuple) and len(value) == 2:
        return tuple(int(d) for d in value[1])
    return tuple(int(d) for d in np.shape(value))


def normalize_outputs(outputs: Mapping[str, Any]) -> CanonicalLayout:
    """
    Classify named model outputs and return their canonical layout.

    Output names are ignored; only shapes and order matter. Two or more outputs
    are first tried as a boxes/scores pair, falling back to reading the first
    output as a combined detections tensor. Outputs that neither path reads
    (prototype masks, grids, scalars) are never validated.
    """

    items = [(str(name), value) for name, value in outputs.items()]
    if not items:
        raise UnsupportedTensorShape("Model produced no outputs.")

    if len(items) >= 2:
        pair = find_split_pair(items)
        if pair is not None:
            t_boxes, t_scores = (OutputTensor.from_value(name, value) for name, value in pair)
            boxes = canonical_boxes(t_boxes)
            scores = canonical_scores(t_scores, boxes.shape[0])
            logger.debug("split layout: boxes=%s (%s) scores=%s (%s)", t_boxes.name, t_boxes.shape, t_scores.name, t_scores.shape)
            return SplitLayout(boxes=boxes, scores=scores)

    first = OutputTensor.from_value(*items[0])
    layout = canonical_combined(first)
    logger.debug("combined layout from %s (%s): N=%d no=%d", first.name, first.shape, layout.num_boxes, layout.fields_per_box)
    return layout


def find_split_pair(items: Sequence[Tuple[str, Any]]) -> Optional[Tuple[Tuple[str, Any], Tuple[str, Any]]]:
    """
    First 3-D output with a 4 at axis 1 or 2 is the boxes tensor; the first other 3-D output holds scores.
    """

    boxes: Optional[Tuple[str, Any]] = None
    scores: Optional[Tuple[str, Any]] = None
    for item in items:
        dims = _raw_dims(item[1])
        if len(dims) != 3:
            continue
        if boxes is None and (dims[2] == 4 or dims[1] == 4):
            boxes = item
        elif scores is None:
            scores = item
    if boxes is None or scores is None:
        return None
    return boxes, scores


def canonical_boxes(t: OutputTensor) -> np.ndarray:
    """
    Boxes tensor -> (N, 4). Accepts [1, N, 4] and [1, 4, N].
    """

    if t.shape.rank == 3 and t.shape.dim(0) == 1:
        if t.shape.dim(2) == 4:
            return t.reshaped(t.shape.dim(1), 4)
        if t.shape.dim(1) == 4:
            return transpose2(t.data, 4, t.shape.dim(2))
    raise UnsupportedTensorShape(f"Unexpected boxes shape: {t.shape}")


def canonical_scores(t: OutputTensor, num_boxes: int) -> np.ndarray:
    """
    Scores tensor -> (N, nc). Accepts [1, N, nc] and [1, nc, N]; `num_boxes` picks the box axis.
    """

    if t.shape.rank == 3 and t.shape.dim(0) == 1:
        if t.shape.dim(1) == num_boxes:
            return t.reshaped(num_boxes, t.shape.dim(2))
        if t.shape.dim(2) == num_boxes:
            return transpose2(t.data, t.shape.dim(1), num_boxes)
    raise UnsupportedTensorShape(f"Unexpected scores shape: {t.shape} for {num_boxes} boxes")


def canonical_combined(t: OutputTensor) -> CombinedLayout:
    """
    Single detections tensor -> (N, no). Accepts [1, A, B] (either axis order) and [N, no].
    """

    if t.shape.rank == 3 and t.shape.dim(0) == 1:
        a, b = t.shape.dim(1), t.shape.dim(2)
        if MIN_FIELDS_PER_BOX <= b <= MAX_FIELDS_PER_BOX:
            return CombinedLayout(data=t.reshaped(a, b))
        # Channels-first export, e.g. (1, 84, 8400).
        return CombinedLayout(data=transpose2(t.data, a, b))
    if t.shape.rank == 2:
        return CombinedLayout(data=t.reshaped(t.shape.dim(0), t.shape.dim(1)))
    raise UnsupportedTensorShape(f"Unexpected output shape: {t.shape}")
