from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidArgumentError
from .labels import load_label_table
from .letterbox import LetterboxParams, compute_params, letterbox
from .nms import suppress
from .postprocess import CandidateDecoder, CandidateObserver, DecoderConfig
from .types import Detection


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model/label paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path: absolute paths as-is, relative ones
    against `root` (or the project root when `root` is "auto"/None).
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PipelineConfig:
    """
    Fixed per-pipeline settings.
    """

    input_size: int = 640
    confidence_threshold: float = 0.5
    iou_threshold: float = 0.45
    max_detections: int = 100
    aspect_ratio_correction: bool = True
    # True when the model emits box coordinates in [0, 1] instead of input pixels.
    normalized_coords: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.input_size, bool) or not isinstance(self.input_size, int) or self.input_size <= 0:
            raise InvalidArgumentError(f"input_size must be a positive integer, got {self.input_size!r}")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise InvalidArgumentError(f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise InvalidArgumentError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if isinstance(self.max_detections, bool) or not isinstance(self.max_detections, int) or self.max_detections < 0:
            raise InvalidArgumentError(f"max_detections must be an integer >= 0, got {self.max_detections!r}")


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    params: LetterboxParams


class DetectionPipeline:
    """
    Post-processing pipeline: decode -> NMS, with optional preprocess + inference.

    `postprocess` is the core and needs only the raw model output. `__call__`
    additionally letterboxes a BGR image (OpenCV-style), runs `infer_fn` on an
    NHWC float32 RGB blob in [0, 1] and post-processes the result.

    Instances hold only immutable configuration, so one pipeline can serve
    several threads as long as `infer_fn` itself is thread-safe.
    """

    def __init__(
        self,
        cfg: PipelineConfig,
        labels: Sequence[str],
        *,
        infer_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        backend: Optional[object] = None,
        observer: Optional[CandidateObserver] = None,
    ):
        self.cfg = cfg
        self.labels: Tuple[str, ...] = tuple(labels)
        self._infer_fn = infer_fn
        self.backend = backend
        self.decoder = CandidateDecoder(
            DecoderConfig(
                confidence_threshold=cfg.confidence_threshold,
                normalized_coords=cfg.normalized_coords,
            ),
            observer=observer,
        )

    def params_for(self, original_width: int, original_height: int) -> LetterboxParams:
        return compute_params(original_width, original_height, self.cfg.input_size, self.cfg.aspect_ratio_correction)

    def postprocess(self, preds: np.ndarray, original_size: Tuple[int, int]) -> List[Detection]:
        """
        Raw model output -> final detections for an image of `original_size` (width, height).
        """

        params = self.params_for(*original_size)
        return self.postprocess_with_params(preds, params)

    def postprocess_with_params(self, preds: np.ndarray, params: LetterboxParams) -> List[Detection]:
        candidates = self.decoder.decode(preds, params, self.labels)
        detections = suppress(candidates, self.cfg.iou_threshold, self.cfg.max_detections)
        logger.debug("decoded %d candidates, kept %d after NMS", len(candidates), len(detections))
        return detections

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise InvalidArgumentError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        orig_h, orig_w = image_bgr.shape[:2]
        params = self.params_for(orig_w, orig_h)
        img = letterbox(image_bgr, params)

        # BGR -> RGB, normalize, add batch (NHWC)
        blob = img[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.ascontiguousarray(blob)[None, ...]

        return PreprocessResult(blob=blob, params=params)

    def __call__(self, image_bgr: np.ndarray) -> List[Detection]:
        if self._infer_fn is None:
            raise RuntimeError("This pipeline has no inference function; use postprocess() with model output.")
        prep = self.preprocess(image_bgr)
        preds = self._infer_fn(prep.blob)
        return self.postprocess_with_params(preds, prep.params)


def load_pipeline(
    model_path: PathLike,
    labels_path: Optional[PathLike] = None,
    *,
    cfg: PipelineConfig = PipelineConfig(),
    root: Optional[PathLike] = "auto",
    num_classes: Optional[int] = None,
    providers: Optional[Sequence[str]] = None,
    input_name: Optional[str] = None,
    output_name: Optional[str] = None,
    channels_first: bool = False,
    observer: Optional[CandidateObserver] = None,
) -> DetectionPipeline:
    """
    Create an ONNX Runtime backed pipeline for a model on disk.

        pipe = load_pipeline("models/yolov8n.onnx", "models/labels.txt")

    Relative paths resolve against the project root by default. When the labels
    cannot be loaded and `num_classes` is given, synthetic `class_<i>` names are used.
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    resolved = resolve_path(model_path, root=root)
    if resolved.suffix.lower() != ".onnx":
        raise ValueError(f"Only .onnx models are supported, got '{resolved.suffix}'.")

    labels = load_label_table(
        resolve_path(labels_path, root=root) if labels_path is not None else None,
        num_classes=num_classes,
    )

    backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=providers,
            input_name=input_name,
            output_name=output_name,
            channels_first=channels_first,
        ),
    )
    return DetectionPipeline(cfg, labels, infer_fn=backend.infer, backend=backend, observer=observer)
