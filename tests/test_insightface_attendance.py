from __future__ import annotations

from pathlib import Path

import sys

import cv2
import numpy as np
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from classroom_attendance.errors import CapabilityNotReady
from classroom_attendance.face.analyzer import InsightFaceAnalyzer, bbox_iou_xyxy, dedupe_faces_nms
from classroom_attendance.face.types import DetectedFace


def _pick_group_photo(group_dir: Path) -> Path:
    for ext in ("*.jpg", "*.jpeg", "*.png"):
        matches = sorted(group_dir.glob(ext))
        if matches:
            return matches[0]
    raise FileNotFoundError(f"No group photo found under {group_dir}")


def _face(bbox, score: float) -> DetectedFace:
    return DetectedFace(bbox=np.asarray(bbox, dtype=np.float32), embedding=np.zeros(4, dtype=np.float32), det_score=score)


def test_bbox_iou():
    assert bbox_iou_xyxy([0, 0, 10, 10], [0, 0, 10, 10]) == pytest.approx(1.0)
    assert bbox_iou_xyxy([0, 0, 10, 10], [20, 20, 30, 30]) == 0.0
    assert bbox_iou_xyxy([0, 0, 10, 10], [5, 0, 15, 10]) == pytest.approx(50 / 150)


def test_nms_keeps_best_of_overlapping_and_detection_order():
    faces = [
        _face([100, 0, 140, 40], 0.7),
        _face([0, 0, 40, 40], 0.6),
        _face([2, 1, 41, 40], 0.9),
    ]
    kept = dedupe_faces_nms(faces, iou_thresh=0.30)
    assert [f.det_score for f in kept] == [0.7, 0.9]


def test_detect_before_prepare_is_not_ready():
    analyzer = InsightFaceAnalyzer()
    assert analyzer.ready is False
    with pytest.raises(CapabilityNotReady):
        analyzer.detect_faces(np.zeros((32, 32, 3), dtype=np.uint8))


def test_group_photo_attendance_with_insightface(tmp_path: Path):
    roster_dir = repo_root / "data" / "roster"
    group_dir = repo_root / "data" / "group"

    if not roster_dir.exists():
        pytest.skip("data/roster not found")
    if not group_dir.exists():
        pytest.skip("data/group not found")

    try:
        photo = _pick_group_photo(group_dir)
    except FileNotFoundError as e:
        pytest.skip(str(e))

    from attendance_cli import register_roster
    from classroom_attendance.attendance import AttendanceSession
    from classroom_attendance.utils.draw import annotate_image

    session = AttendanceSession(InsightFaceAnalyzer(det_size=640, device="auto"))
    try:
        session.start()
    except Exception as e:
        pytest.skip(f"InsightFace models unavailable: {e}")

    registered = register_roster(session, roster_dir)
    if registered == 0:
        pytest.skip("no usable roster photos")

    image = cv2.imread(str(photo))
    assert image is not None
    report = session.take_attendance(image)

    roster = session.roster
    assert set(report.present) | set(report.absent) == set(roster)
    assert not set(report.present) & set(report.absent)

    h, w = image.shape[:2]
    for face in report.faces:
        x1, y1, x2, y2 = face.bbox
        assert 0 <= x1 <= x2 <= w
        assert 0 <= y1 <= y2 <= h
        assert isinstance(face.display_label, str)

    out = tmp_path / f"pytest_attendance_{photo.stem}.jpg"
    assert cv2.imwrite(str(out), annotate_image(image, report.faces))
    print(f"Saved visualization to: {out}")
