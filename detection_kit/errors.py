from __future__ import annotations


class DetectionKitError(Exception):
    """
    Base class for errors raised by detection_kit.
    """


class InvalidArgumentError(DetectionKitError, ValueError):
    """
    Malformed geometry or configuration (non-positive sizes, thresholds out of range, ...).
    """


class ShapeMismatchError(DetectionKitError, ValueError):
    """
    Model output or label table cannot be decoded with the current layout.
    """
