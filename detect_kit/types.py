from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass
class Detection:
    """
    Final detection in source-frame pixel coordinates.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int = 0

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


@dataclass(frozen=True)
class LetterboxMeta:
    """
    Scale/pad used to fit a frame into the square model input.

    `pad_x`/`pad_y` are the left/top offsets of the scaled frame.
    """

    scale: float
    pad_x: float
    pad_y: float
    input_size: int
    new_w: int
    new_h: int

    @classmethod
    def identity(cls, input_size: int) -> "LetterboxMeta":
        return cls(scale=1.0, pad_x=0.0, pad_y=0.0, input_size=input_size, new_w=input_size, new_h=input_size)


@dataclass
class FrameResult:
    """
    Everything the display layer needs for one frame.
    """

    detections: List[Detection] = field(default_factory=list)
    decode_ms: float = 0.0
    preprocess_ms: float = 0.0
    inference_ms: float = 0.0

    @property
    def count(self) -> int:
        return len(self.detections)

    @property
    def total_ms(self) -> float:
        return self.preprocess_ms + self.inference_ms + self.decode_ms
