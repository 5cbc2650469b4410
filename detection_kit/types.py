from dataclasses import dataclass
from typing import Tuple


UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class Detection:
    """
    Final detection in original image pixel coordinates.

    `class_id` is -1 when no class column scored above zero; the label is then
    `UNKNOWN_LABEL`.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    label: str
    confidence: float
    class_id: int

    @property
    def bounding_box(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def __str__(self) -> str:
        return f"{self.label} ({self.confidence * 100:.2f}%)"
