from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from classroom_attendance.config import MAX_PROCESSING_WIDTH
from classroom_attendance.errors import AttendanceError, CapabilityFailure, NoRegisteredStudents
from classroom_attendance.face.analyzer import FaceAnalyzer
from classroom_attendance.face.matcher import DistanceMatcher
from classroom_attendance.face.types import DetectedFace
from classroom_attendance.utils.image import downscale_to_width, rescale_bbox
from classroom_attendance.utils.log import get_logger

from .results import FaceMatch

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecognitionConfig:
    # Wider photos are shrunk before detection to bound latency.
    max_width: int = MAX_PROCESSING_WIDTH


def detect_faces(
    image: np.ndarray,
    analyzer: FaceAnalyzer,
    config: RecognitionConfig = RecognitionConfig(),
) -> List[DetectedFace]:
    """Run the analyzer on a width-bounded copy of `image`.

    Returned boxes are mapped back onto the original image geometry. Any
    backend exception becomes `CapabilityFailure`; our own errors (e.g. not
    ready) pass through unchanged.
    """
    processed, scale = downscale_to_width(image, config.max_width)
    try:
        faces = analyzer.detect_faces(processed)
    except AttendanceError:
        raise
    except Exception as e:
        logger.error(f"Face analysis failed: {e}")
        raise CapabilityFailure(f"Face analysis failed: {e}") from e

    out: List[DetectedFace] = []
    for f in faces:
        out.append(
            DetectedFace(
                bbox=np.asarray(rescale_bbox(f.bbox, scale, image.shape), dtype=np.float32),
                embedding=np.asarray(f.embedding, dtype=np.float32).reshape(-1),
                det_score=float(f.det_score),
                kps=None if f.kps is None else np.asarray(f.kps, dtype=np.float32) * float(scale),
            )
        )
    return out


def recognize(
    image: np.ndarray,
    matcher: Optional[DistanceMatcher],
    analyzer: FaceAnalyzer,
    config: RecognitionConfig = RecognitionConfig(),
) -> List[FaceMatch]:
    """Match every face of a group photo, in detection order.

    No faces is a valid outcome and yields an empty list.
    """
    if matcher is None:
        raise NoRegisteredStudents("No students registered yet")

    faces = detect_faces(image, analyzer, config)
    if not faces:
        logger.warning("未检测到人脸")
        return []

    matches: List[FaceMatch] = []
    for i, face in enumerate(faces):
        result = matcher.match(face.embedding)
        x1, y1, x2, y2 = [int(v) for v in face.bbox]
        match = FaceMatch(bbox=(x1, y1, x2, y2), result=result)
        matches.append(match)
        logger.info(f"检测到人脸 {i + 1}: {match.display_label}")

    return matches
