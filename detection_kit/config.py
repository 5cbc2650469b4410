from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

from .runtime import PipelineConfig


PathLike = Union[str, Path]

_FLOAT_KEYS = ("confidence_threshold", "iou_threshold")
_INT_KEYS = ("input_size", "max_detections")
_BOOL_KEYS = ("aspect_ratio_correction", "normalized_coords")


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_bool(payload: Dict[str, Any], key: str) -> bool:
    value = payload[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def pipeline_config_from_dict(payload: Dict[str, Any]) -> PipelineConfig:
    """
    Build a PipelineConfig from a parsed config object.

    Expected shape:

        {"schema_version": 1, "input_size": 640, "confidence_threshold": 0.5, ...}

    Keys other than `schema_version` are optional and default to PipelineConfig's values.
    """

    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {"schema_version", *_FLOAT_KEYS, *_INT_KEYS, *_BOOL_KEYS}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    if _require_int(payload, "schema_version") != 1:
        raise ValueError("pipeline config schema_version must be 1")

    kwargs: Dict[str, Any] = {}
    for key in _FLOAT_KEYS:
        if key in payload:
            kwargs[key] = _optional_number(payload, key)
    for key in _INT_KEYS:
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in _BOOL_KEYS:
        if key in payload:
            kwargs[key] = _optional_bool(payload, key)

    return PipelineConfig(**kwargs)


def load_pipeline_config(path: PathLike) -> PipelineConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    return pipeline_config_from_dict(payload)
