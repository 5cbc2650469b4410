"""
Post-processing for single-stage object detectors.

Raw (N, 4 + C) model output -> confidence-filtered candidates in original
image pixels -> class-aware NMS. Core needs only NumPy; OpenCV is used for
letterboxing images and drawing, ONNX Runtime for the optional backend.
"""

from .types import UNKNOWN_LABEL, Detection
from .errors import DetectionKitError, InvalidArgumentError, ShapeMismatchError
from .letterbox import LetterboxParams, compute_params, letterbox, to_original_coords
from .nms import NMSConfig, iou, nms, suppress
from .postprocess import CandidateDecoder, CandidateEvent, CandidateStatus, DecoderConfig, decode
from .labels import labels_from_mapping, load_class_names, load_label_table, load_labels, synthetic_labels
from .runtime import DetectionPipeline, PipelineConfig, find_project_root, load_pipeline, resolve_path
from .config import load_pipeline_config, pipeline_config_from_dict
from .visualize import draw_detections

__all__ = [
    "UNKNOWN_LABEL",
    "Detection",
    "DetectionKitError",
    "InvalidArgumentError",
    "ShapeMismatchError",
    "LetterboxParams",
    "compute_params",
    "letterbox",
    "to_original_coords",
    "NMSConfig",
    "iou",
    "nms",
    "suppress",
    "CandidateDecoder",
    "CandidateEvent",
    "CandidateStatus",
    "DecoderConfig",
    "decode",
    "labels_from_mapping",
    "load_class_names",
    "load_label_table",
    "load_labels",
    "synthetic_labels",
    "DetectionPipeline",
    "PipelineConfig",
    "find_project_root",
    "load_pipeline",
    "resolve_path",
    "load_pipeline_config",
    "pipeline_config_from_dict",
    "draw_detections",
]
