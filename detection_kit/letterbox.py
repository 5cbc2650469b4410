from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidArgumentError


@dataclass(frozen=True)
class LetterboxParams:
    """
    Mapping between original image pixels and the square network input.

    With aspect ratio correction the content occupies
    [offset_x, offset_x + final_width) x [offset_y, offset_y + final_height)
    of the input square; the rest is padding.
    """

    input_size: int
    final_width: int
    final_height: int
    offset_x: int
    offset_y: int
    scale_x: float
    scale_y: float
    original_width: int
    original_height: int
    aspect_ratio_correction: bool


def _require_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be > 0, got {value}")
    return int(value)


def compute_params(
    original_width: int,
    original_height: int,
    input_size: int = 640,
    aspect_ratio_correction: bool = True,
) -> LetterboxParams:
    """
    Derive the letterbox mapping for an image of the given size.

    Without correction both axes are stretched independently to `input_size`.
    With correction the longer axis is scaled to `input_size` and the shorter
    one is centered with symmetric padding.
    """

    w = _require_positive_int("original_width", original_width)
    h = _require_positive_int("original_height", original_height)
    size = _require_positive_int("input_size", input_size)

    if not aspect_ratio_correction:
        return LetterboxParams(
            input_size=size,
            final_width=size,
            final_height=size,
            offset_x=0,
            offset_y=0,
            scale_x=w / size,
            scale_y=h / size,
            original_width=w,
            original_height=h,
            aspect_ratio_correction=False,
        )

    if w >= h:
        final_w = size
        final_h = max(1, int(round(h * size / w)))
        scale = w / size
    else:
        final_h = size
        final_w = max(1, int(round(w * size / h)))
        scale = h / size

    return LetterboxParams(
        input_size=size,
        final_width=final_w,
        final_height=final_h,
        offset_x=(size - final_w) // 2,
        offset_y=(size - final_h) // 2,
        scale_x=scale,
        scale_y=scale,
        original_width=w,
        original_height=h,
        aspect_ratio_correction=True,
    )


def to_original_coords(params: LetterboxParams, x: float, y: float) -> Tuple[float, float]:
    """
    Map a point from network input space back to original image pixels.
    """

    return (x - params.offset_x) * params.scale_x, (y - params.offset_y) * params.scale_y


def letterbox(
    image: np.ndarray,
    params: LetterboxParams,
    color: Tuple[int, int, int] = (114, 114, 114),
) -> np.ndarray:
    """
    Resize and pad `image` (H, W, 3) into the `params.input_size` square.

    The content lands exactly where `params` says it does, so boxes predicted on
    the returned image map back with `to_original_coords`.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array.")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidArgumentError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")

    h, w = image.shape[:2]
    if (w, h) != (params.original_width, params.original_height):
        raise InvalidArgumentError(
            f"Image size {w}x{h} does not match letterbox params "
            f"{params.original_width}x{params.original_height}"
        )

    if (w, h) != (params.final_width, params.final_height):
        image = cv2.resize(image, (params.final_width, params.final_height), interpolation=cv2.INTER_LINEAR)

    size = params.input_size
    top = params.offset_y
    left = params.offset_x
    bottom = size - params.final_height - top
    right = size - params.final_width - left
    if top == bottom == left == right == 0:
        return image

    return cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)
