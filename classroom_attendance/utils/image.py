from __future__ import annotations

from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from classroom_attendance.errors import CapabilityFailure, InvalidInput

ImageInput = Union[bytes, bytearray, str, Path, np.ndarray]


def load_image(image: ImageInput) -> np.ndarray:
    """Return a BGR uint8 image from encoded bytes, a file path or an array."""
    if image is None:
        raise InvalidInput("No image supplied")

    if isinstance(image, np.ndarray):
        if image.size == 0 or image.ndim not in (2, 3):
            raise InvalidInput(f"Unsupported image array shape: {image.shape}")
        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        return image

    if isinstance(image, (str, Path)):
        path = Path(image)
        if not path.is_file():
            raise InvalidInput(f"Image file not found: {path}")
        data = path.read_bytes()
    else:
        data = bytes(image)

    if not data:
        raise InvalidInput("Image is empty")

    buf = np.frombuffer(data, dtype=np.uint8)
    decoded = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if decoded is None:
        raise CapabilityFailure("Could not decode image")
    return decoded


def downscale_to_width(image: np.ndarray, max_width: int) -> Tuple[np.ndarray, float]:
    """Shrink `image` proportionally so its width is at most `max_width`.

    Returns (image, scale) where scale = original_width / processed_width, to
    map boxes found on the processed image back onto the original.
    """
    h, w = image.shape[:2]
    if max_width is None or max_width <= 0 or w <= max_width:
        return image, 1.0
    ratio = float(max_width) / float(w)
    new_h = max(1, int(round(h * ratio)))
    resized = cv2.resize(image, (int(max_width), new_h), interpolation=cv2.INTER_AREA)
    return resized, float(w) / float(max_width)


def rescale_bbox(bbox, scale: float, image_shape) -> Tuple[int, int, int, int]:
    """Map an xyxy box by `scale` and clip it to the original image."""
    h, w = image_shape[:2]
    x1, y1, x2, y2 = [float(v) * float(scale) for v in np.asarray(bbox, dtype=float).reshape(-1)[:4]]
    x1 = int(round(min(max(0.0, x1), w)))
    x2 = int(round(min(max(0.0, x2), w)))
    y1 = int(round(min(max(0.0, y1), h)))
    y2 = int(round(min(max(0.0, y2), h)))
    return x1, y1, x2, y2
