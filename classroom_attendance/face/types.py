from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

BBox = Tuple[int, int, int, int]


@dataclass
class DetectedFace:
    # xyxy in the coordinates of the image that was analysed
    bbox: np.ndarray
    embedding: np.ndarray
    det_score: float = 1.0
    kps: Optional[np.ndarray] = field(default=None, repr=False)
