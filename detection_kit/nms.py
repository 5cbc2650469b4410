from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .errors import InvalidArgumentError
from .types import Detection


Box = Tuple[float, float, float, float]


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: int = 100


def iou(a: Box, b: Box) -> float:
    """
    Intersection over union of two (left, top, right, bottom) boxes.
    """

    inter_w = min(a[2], b[2]) - max(a[0], b[0])
    inter_h = min(a[3], b[3]) - max(a[1], b[1])
    if inter_w <= 0 or inter_h <= 0:
        return 0.0

    inter = inter_w * inter_h
    area_a = (a[2] - a[0]) * (a[3] - a[1])
    area_b = (b[2] - b[0]) * (b[3] - b[1])
    return float(inter / (area_a + area_b - inter))


def suppress(detections: Sequence[Detection], iou_threshold: float, max_detections: int) -> List[Detection]:
    """
    Class-aware greedy NMS.

    Detections are visited in confidence order (stable for ties). Each accepted
    detection suppresses every later detection of the same class whose IoU with
    it is strictly greater than `iou_threshold`. Stops as soon as
    `max_detections` have been accepted.

    Complexity is O(n^2) in the number of candidates: every accepted detection
    is compared against all remaining ones. Fine for a few hundred candidates
    left after confidence filtering; raising the candidate count (e.g. a very
    low confidence threshold) makes this the bottleneck.
    """

    if isinstance(max_detections, bool) or max_detections < 0:
        raise InvalidArgumentError(f"max_detections must be >= 0, got {max_detections!r}")
    detections = list(detections)
    if not detections or max_detections == 0:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    boxes, class_ids = boxes[order], class_ids[order]

    x1, y1, x2, y2 = boxes.T
    areas = (x2 - x1) * (y2 - y1)
    suppressed = np.zeros(len(order), dtype=bool)
    keep: List[int] = []

    for i in range(len(order)):
        if suppressed[i]:
            continue
        if len(keep) >= max_detections:
            break
        keep.append(i)

        rest = np.arange(i + 1, len(order))
        rest = rest[~suppressed[rest] & (class_ids[rest] == class_ids[i])]
        if rest.size == 0:
            continue

        w = np.minimum(x2[i], x2[rest]) - np.maximum(x1[i], x1[rest])
        h = np.minimum(y2[i], y2[rest]) - np.maximum(y1[i], y1[rest])
        overlaps = (w > 0) & (h > 0)
        inter = np.where(overlaps, w * h, 0.0)
        union = areas[i] + areas[rest] - inter
        ious = np.divide(inter, union, out=np.zeros_like(inter), where=overlaps)
        suppressed[rest[ious > iou_threshold]] = True

    return [detections[int(order[i])] for i in keep]


def nms(detections: Sequence[Detection], cfg: NMSConfig = NMSConfig()) -> List[Detection]:
    return suppress(detections, cfg.iou_threshold, cfg.max_detections)
