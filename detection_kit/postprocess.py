from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidArgumentError, ShapeMismatchError
from .letterbox import LetterboxParams
from .types import UNKNOWN_LABEL, Detection


class CandidateStatus(str, Enum):
    ACCEPTED = "accepted"
    LOW_CONFIDENCE = "low_confidence"
    DEGENERATE = "degenerate"
    OUTSIDE_CONTENT = "outside_content"
    EMPTY_AFTER_CLAMP = "empty_after_clamp"


# Index into this tuple is the per-row status code used while decoding.
_STATUS_BY_CODE = (
    CandidateStatus.ACCEPTED,
    CandidateStatus.LOW_CONFIDENCE,
    CandidateStatus.DEGENERATE,
    CandidateStatus.OUTSIDE_CONTENT,
    CandidateStatus.EMPTY_AFTER_CLAMP,
)


@dataclass(frozen=True)
class CandidateEvent:
    """
    Per-row decode diagnostics handed to an observer.

    `box` is (x1, y1, x2, y2) in network input pixels, after removing the
    letterbox offset when aspect ratio correction is on.
    """

    index: int
    class_id: int
    confidence: float
    box: Tuple[float, float, float, float]
    status: CandidateStatus


CandidateObserver = Callable[[CandidateEvent], None]


@dataclass(frozen=True)
class DecoderConfig:
    """
    Konfigurasi decoder kandidat.

    normalized_coords: set True when the model emits cx/cy/w/h in [0, 1]
    instead of input pixels; they are multiplied by the input size first.
    """

    confidence_threshold: float = 0.5
    normalized_coords: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise InvalidArgumentError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )


class CandidateDecoder:
    """
    Decode single-stage detector output into detections in original image pixels.

    Layout per image: (N, 4 + C) rows of [cx, cy, w, h, class_scores...].
    A leading batch axis of size 1 is accepted. Rows are filtered, never
    reordered, and no count limit is applied (that is NMS's job).
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig(), observer: Optional[CandidateObserver] = None):
        self.cfg = cfg
        self.observer = observer

    def decode(self, preds: np.ndarray, params: LetterboxParams, labels: Sequence[str]) -> List[Detection]:
        rows = self._as_rows(preds)
        if len(labels) == 0:
            raise ShapeMismatchError("Label table is empty.")
        if rows.shape[0] == 0:
            return []

        scores, class_ids = self._best_class(rows, len(labels))
        boxes = self._corners(rows[:, :4], params)
        mapped = self._to_original(boxes, params)
        status = self._classify(boxes, mapped, scores, params)

        if self.observer is not None:
            self._notify(boxes, scores, class_ids, status)

        keep = np.flatnonzero(status == 0)
        return [
            Detection(
                x1=float(mapped[i, 0]),
                y1=float(mapped[i, 1]),
                x2=float(mapped[i, 2]),
                y2=float(mapped[i, 3]),
                label=_resolve_label(labels, int(class_ids[i])),
                confidence=float(scores[i]),
                class_id=int(class_ids[i]),
            )
            for i in keep
        ]

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _as_rows(self, preds: np.ndarray) -> np.ndarray:
        p = np.asarray(preds)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ShapeMismatchError(f"Expected (N, 4 + C) output, got shape {p.shape}")
        if p.shape[1] < 5:
            raise ShapeMismatchError(f"Output needs 4 box columns and at least one class column, got shape {p.shape}")
        # Copy: the caller's buffer is never written to.
        return p.astype(np.float64, copy=True)

    def _best_class(self, rows: np.ndarray, num_labels: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Max class score and its index per row; ties keep the lowest index.

        Columns past the label table are not scanned. Rows where no score is
        above zero get class -1 and confidence 0.
        """

        num_classes = min(rows.shape[1] - 4, num_labels)
        class_scores = rows[:, 4 : 4 + num_classes]
        # Only scores above zero compete; NaN never wins.
        class_scores = np.where(class_scores > 0, class_scores, 0.0)
        class_ids = np.argmax(class_scores, axis=1)
        scores = class_scores[np.arange(class_scores.shape[0]), class_ids]

        class_ids = np.where(scores > 0, class_ids, -1)
        return scores, class_ids

    def _corners(self, boxes: np.ndarray, params: LetterboxParams) -> np.ndarray:
        if self.cfg.normalized_coords:
            boxes = boxes * params.input_size

        cx, cy, w_box, h_box = boxes.T
        x1 = cx - w_box / 2
        y1 = cy - h_box / 2
        x2 = cx + w_box / 2
        y2 = cy + h_box / 2
        corners = np.stack([x1, y1, x2, y2], axis=1)

        if params.aspect_ratio_correction:
            corners[:, [0, 2]] -= params.offset_x
            corners[:, [1, 3]] -= params.offset_y
        return corners

    def _classify(
        self,
        boxes: np.ndarray,
        mapped: np.ndarray,
        scores: np.ndarray,
        params: LetterboxParams,
    ) -> np.ndarray:
        """
        Status code per row (see `_STATUS_BY_CODE`); the earliest failing check wins.
        """

        x1, y1, x2, y2 = boxes.T
        status = np.zeros(boxes.shape[0], dtype=np.int8)

        # Checks are phrased as "not valid" so NaN coordinates are rejected.
        valid = (mapped[:, 2] > mapped[:, 0]) & (mapped[:, 3] > mapped[:, 1])
        status[~valid] = 4

        if params.aspect_ratio_correction:
            inside = (x2 > 0) & (y2 > 0) & (x1 < params.final_width) & (y1 < params.final_height)
            status[~inside] = 3
            proper = (x2 > x1) & (y2 > y1)
            status[~proper] = 2

        status[scores < self.cfg.confidence_threshold] = 1
        return status

    def _scale(self, boxes: np.ndarray, params: LetterboxParams) -> np.ndarray:
        scaled = boxes.copy()
        scaled[:, [0, 2]] *= params.scale_x
        scaled[:, [1, 3]] *= params.scale_y
        return scaled

    def _clamp(self, boxes: np.ndarray, params: LetterboxParams) -> np.ndarray:
        clamped = boxes.copy()
        clamped[:, [0, 2]] = np.clip(clamped[:, [0, 2]], 0, params.original_width)
        clamped[:, [1, 3]] = np.clip(clamped[:, [1, 3]], 0, params.original_height)
        return clamped

    def _to_original(self, boxes: np.ndarray, params: LetterboxParams) -> np.ndarray:
        return self._clamp(self._scale(boxes, params), params)

    def _notify(self, boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray, status: np.ndarray) -> None:
        for i in range(boxes.shape[0]):
            x1, y1, x2, y2 = (float(v) for v in boxes[i])
            self.observer(
                CandidateEvent(
                    index=i,
                    class_id=int(class_ids[i]),
                    confidence=float(scores[i]),
                    box=(x1, y1, x2, y2),
                    status=_STATUS_BY_CODE[int(status[i])],
                )
            )


def _resolve_label(labels: Sequence[str], class_id: int) -> str:
    if 0 <= class_id < len(labels):
        return labels[class_id]
    return UNKNOWN_LABEL


def decode(
    preds: np.ndarray,
    params: LetterboxParams,
    labels: Sequence[str],
    confidence_threshold: float = 0.5,
    *,
    normalized_coords: bool = False,
    observer: Optional[CandidateObserver] = None,
) -> List[Detection]:
    """
    Functional shortcut for `CandidateDecoder(...).decode(...)`.
    """

    cfg = DecoderConfig(confidence_threshold=confidence_threshold, normalized_coords=normalized_coords)
    return CandidateDecoder(cfg, observer=observer).decode(preds, params, labels)
