from __future__ import annotations

import threading

from typing import List, Optional

from classroom_attendance.config import DEFAULT_MATCH_THRESHOLD, MAX_PROCESSING_WIDTH
from classroom_attendance.errors import CapabilityNotReady, MultipleFacesDetected, NoFaceDetected
from classroom_attendance.face.analyzer import FaceAnalyzer
from classroom_attendance.face.matcher import DistanceMatcher, build_matcher
from classroom_attendance.face.registry import DescriptorRegistry, normalize_label
from classroom_attendance.utils.image import ImageInput, load_image
from classroom_attendance.utils.log import get_logger

from .pipeline import RecognitionConfig, detect_faces, recognize
from .reconcile import reconcile
from .results import AttendanceReport

logger = get_logger(__name__)


class AttendanceSession:
    """
    One working session: registered students, the current matcher and the
    face-analysis backend.

    Registry changes and the matcher rebuild happen together under a lock.
    An attendance run reads the matcher and roster once, at its start, and
    finishes against that state even if students are registered or removed
    meanwhile. Face analysis itself runs outside the lock.
    """

    def __init__(
        self,
        analyzer: FaceAnalyzer,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        max_width: int = MAX_PROCESSING_WIDTH,
    ):
        """
        Args:
            analyzer: face-analysis backend (detection + embeddings)
            threshold: maximum descriptor distance accepted as a match
            max_width: photos wider than this are downscaled before detection
        """
        self.analyzer = analyzer
        self.threshold = float(threshold)
        self.recognition_config = RecognitionConfig(max_width=int(max_width))

        self._registry = DescriptorRegistry()
        self._matcher: Optional[DistanceMatcher] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "AttendanceSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """Load face-analysis models; safe to call more than once."""
        if not self.analyzer.ready:
            self.analyzer.prepare()

    def close(self) -> None:
        """Forget every registered student."""
        with self._lock:
            self._registry.clear()
            self._matcher = None

    @property
    def matcher(self) -> Optional[DistanceMatcher]:
        return self._matcher

    @property
    def roster(self) -> List[str]:
        with self._lock:
            return self._registry.roster

    def __len__(self) -> int:
        return len(self._registry)

    def _require_ready(self) -> None:
        if not self.analyzer.ready:
            raise CapabilityNotReady("Face analysis models are not loaded; call start() first")

    def _rebuild(self) -> Optional[DistanceMatcher]:
        # Caller holds self._lock.
        self._matcher = build_matcher(
            self._registry.snapshot(),
            threshold=self.threshold,
            metric=self.analyzer.distance_metric,
        )
        return self._matcher

    def register(self, label, image: ImageInput) -> Optional[DistanceMatcher]:
        """Register one student from a photo containing exactly one face.

        Returns the matcher rebuilt for the new registry state. On any error
        the registry is left untouched.
        """
        name = normalize_label(label)
        img = load_image(image)
        self._require_ready()

        faces = detect_faces(img, self.analyzer, self.recognition_config)
        if not faces:
            raise NoFaceDetected()
        if len(faces) > 1:
            raise MultipleFacesDetected(len(faces))

        with self._lock:
            self._registry.register(name, faces[0].embedding)
            matcher = self._rebuild()
        logger.info(f"{name} registered ({len(self._registry)} students)")
        return matcher

    def remove(self, label) -> Optional[DistanceMatcher]:
        """Remove a student; unknown names are ignored.

        Returns the rebuilt matcher, or None once nobody is registered.
        """
        with self._lock:
            removed = self._registry.remove(label)
            matcher = self._rebuild() if removed else self._matcher
        if removed:
            logger.info(f"{str(label).strip()} removed")
        return matcher

    def take_attendance(self, image: ImageInput) -> AttendanceReport:
        """Match a group photo against the registered students."""
        img = load_image(image)
        self._require_ready()

        with self._lock:
            matcher = self._matcher
            roster = self._registry.roster

        faces = recognize(img, matcher, self.analyzer, self.recognition_config)
        outcome = reconcile([f.result for f in faces], roster)

        h, w = img.shape[:2]
        report = AttendanceReport(outcome=outcome, faces=tuple(faces), image_size=(int(w), int(h)))
        logger.info(
            f"Attendance: {len(outcome.present)} present, {len(outcome.absent)} absent, "
            f"{report.unknown_count} unknown faces"
        )
        return report
