from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import sys

import cv2
import numpy as np
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from classroom_attendance.attendance import (
    AttendanceSession,
    format_match_label,
    label_name,
    reconcile,
)
from classroom_attendance.errors import (
    CapabilityFailure,
    CapabilityNotReady,
    InvalidInput,
    MultipleFacesDetected,
    NoFaceDetected,
    NoRegisteredStudents,
)
from classroom_attendance.face.analyzer import FaceAnalyzer
from classroom_attendance.face.matcher import MatchResult
from classroom_attendance.face.types import DetectedFace
from classroom_attendance.utils.draw import annotate_image
from classroom_attendance.utils.serializer import serialize_report

DESC_A = np.asarray([1.0, 0.0, 0.0, 0.0], dtype=np.float32)
DESC_B = np.asarray([0.0, 1.0, 0.0, 0.0], dtype=np.float32)


def _img(tag: int, width: int = 64, height: int = 48) -> np.ndarray:
    # Uniform image; the fake analyzer recognises it by its pixel value.
    return np.full((height, width, 3), int(tag), dtype=np.uint8)


def _face(embedding, bbox=(2, 2, 20, 20)) -> DetectedFace:
    return DetectedFace(
        bbox=np.asarray(bbox, dtype=np.float32),
        embedding=np.asarray(embedding, dtype=np.float32),
        det_score=0.9,
    )


class _FakeAnalyzer(FaceAnalyzer):
    """Returns scripted faces keyed by the image's pixel value."""

    def __init__(self, script: Optional[Dict[int, List[DetectedFace]]] = None, ready: bool = True) -> None:
        self.script: Dict[int, List[DetectedFace]] = dict(script or {})
        self._ready = ready
        self.seen_shapes: List[tuple] = []
        self.on_detect = None

    @property
    def ready(self) -> bool:
        return self._ready

    def prepare(self) -> None:
        self._ready = True

    def detect_faces(self, image: np.ndarray) -> List[DetectedFace]:
        self.seen_shapes.append(tuple(image.shape))
        if self.on_detect is not None:
            self.on_detect()
        return list(self.script.get(int(image[0, 0, 0]), []))


class _BrokenAnalyzer(_FakeAnalyzer):
    def detect_faces(self, image: np.ndarray) -> List[DetectedFace]:
        raise RuntimeError("onnx session crashed")


@pytest.fixture
def analyzer() -> _FakeAnalyzer:
    return _FakeAnalyzer(
        {
            1: [_face(DESC_A)],
            2: [_face(DESC_B)],
            3: [],
            4: [_face(DESC_A), _face(DESC_B, bbox=(30, 2, 50, 20))],
        }
    )


@pytest.fixture
def session(analyzer: _FakeAnalyzer) -> AttendanceSession:
    s = AttendanceSession(analyzer)
    s.start()
    return s


def test_scenario_single_student_present(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    analyzer.script[10] = [_face([1.0, 0.3, 0.0, 0.0])]

    report = session.take_attendance(_img(10))

    assert report.present == ("Alice",)
    assert report.absent == ()
    assert len(report.faces) == 1
    assert report.faces[0].result.label == "Alice"
    assert report.faces[0].result.distance == pytest.approx(0.3, abs=1e-6)
    assert report.faces[0].display_label == "Alice (0.30)"


def test_scenario_unknown_face(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))
    analyzer.script[11] = [_face([1.0, 0.0, 0.9, 0.0])]

    report = session.take_attendance(_img(11))

    assert report.present == ()
    assert report.absent == ("Alice", "Bob")
    assert report.faces[0].result.is_unknown
    assert report.faces[0].result.distance == pytest.approx(0.9, abs=1e-6)
    assert report.unknown_count == 1
    assert label_name(report.faces[0].display_label) == "unknown"


def test_scenario_empty_registry(session: AttendanceSession, analyzer: _FakeAnalyzer):
    with pytest.raises(NoRegisteredStudents):
        session.take_attendance(_img(1))
    assert analyzer.seen_shapes == []


def test_scenario_two_faces_in_registration_photo(session: AttendanceSession):
    with pytest.raises(NoFaceDetected) as exc_info:
        session.register("Alice", _img(4))
    assert isinstance(exc_info.value, MultipleFacesDetected)
    assert exc_info.value.face_count == 2
    assert session.roster == []
    assert session.matcher is None


def test_register_without_face_changes_nothing(session: AttendanceSession):
    session.register("Alice", _img(1))
    matcher = session.matcher

    with pytest.raises(NoFaceDetected):
        session.register("Bob", _img(3))

    assert session.roster == ["Alice"]
    assert session.matcher is matcher


@pytest.mark.parametrize("name", ["", "  \t"])
def test_register_rejects_blank_name(session: AttendanceSession, analyzer: _FakeAnalyzer, name: str):
    with pytest.raises(InvalidInput):
        session.register(name, _img(1))
    assert analyzer.seen_shapes == []


def test_missing_image_is_invalid_input(session: AttendanceSession, tmp_path: Path):
    with pytest.raises(InvalidInput):
        session.register("Alice", None)
    with pytest.raises(InvalidInput):
        session.register("Alice", b"")
    with pytest.raises(InvalidInput):
        session.register("Alice", tmp_path / "missing.jpg")
    assert session.roster == []


def test_corrupt_image_bytes_is_capability_failure(session: AttendanceSession):
    with pytest.raises(CapabilityFailure):
        session.register("Alice", b"not an image at all")


def test_register_from_encoded_bytes_and_path(session: AttendanceSession, tmp_path: Path):
    ok, buf = cv2.imencode(".png", _img(1))
    assert ok
    session.register("Alice", buf.tobytes())

    ok, buf = cv2.imencode(".png", _img(2))
    fp = tmp_path / "Bob.png"
    fp.write_bytes(buf.tobytes())
    session.register("Bob", fp)

    assert session.roster == ["Alice", "Bob"]


def test_register_returns_fresh_matcher(session: AttendanceSession):
    m1 = session.register("Alice", _img(1))
    m2 = session.register("Bob", _img(2))

    assert m1 is not m2
    assert m1.labels == ("Alice",)
    assert m2.labels == ("Alice", "Bob")
    assert session.matcher is m2


def test_duplicate_registration_overwrites(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    session.register("Alice", _img(2))

    assert session.roster == ["Alice"]
    report = session.take_attendance(_img(2))
    assert report.present == ("Alice",)
    assert report.faces[0].result.distance == pytest.approx(0.0)


def test_remove_student(session: AttendanceSession):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))

    matcher = session.remove("Alice")

    assert session.roster == ["Bob"]
    assert matcher is session.matcher
    assert matcher.labels == ("Bob",)

    report = session.take_attendance(_img(4))
    assert report.present == ("Bob",)
    assert report.absent == ()
    assert "Alice" not in report.present + report.absent
    assert report.faces[0].result.label != "Alice"


def test_remove_last_student_drops_matcher(session: AttendanceSession):
    session.register("Alice", _img(1))
    assert session.remove("Alice") is None
    assert session.matcher is None
    with pytest.raises(NoRegisteredStudents):
        session.take_attendance(_img(1))


def test_remove_unknown_student_is_noop(session: AttendanceSession):
    m = session.register("Alice", _img(1))
    assert session.remove("Nobody") is m
    assert session.roster == ["Alice"]


def test_group_photo_without_faces_marks_everyone_absent(session: AttendanceSession):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))

    report = session.take_attendance(_img(3))

    assert report.faces == ()
    assert report.present == ()
    assert report.absent == ("Alice", "Bob")


def test_attendance_is_repeatable(session: AttendanceSession):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))

    first = session.take_attendance(_img(4))
    second = session.take_attendance(_img(4))

    assert first.outcome == second.outcome
    assert first.present == ("Alice", "Bob")


def test_same_student_twice_counted_once(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))
    analyzer.script[12] = [_face(DESC_A), _face([1.0, 0.1, 0.0, 0.0]), _face([0, 0, 5, 0])]

    report = session.take_attendance(_img(12))

    assert report.present == ("Alice",)
    assert report.absent == ("Bob",)
    assert [f.result.label for f in report.faces] == ["Alice", "Alice", None]


def test_wide_photo_is_downscaled_and_boxes_mapped_back(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    analyzer.script[13] = [_face(DESC_A, bbox=(100, 50, 200, 150))]

    report = session.take_attendance(_img(13, width=2400, height=1000))

    assert analyzer.seen_shapes[-1][:2] == (500, 1200)
    assert report.faces[0].bbox == (200, 100, 400, 300)
    assert report.image_size == (2400, 1000)


def test_narrow_photo_is_not_resized(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1, width=640, height=480))
    assert analyzer.seen_shapes[-1][:2] == (480, 640)


def test_not_ready_capability():
    s = AttendanceSession(_FakeAnalyzer({1: [_face(DESC_A)]}, ready=False))
    with pytest.raises(CapabilityNotReady):
        s.register("Alice", _img(1))
    assert s.roster == []

    s.start()
    s.register("Alice", _img(1))
    assert s.roster == ["Alice"]


def test_capability_error_is_wrapped():
    s = AttendanceSession(_BrokenAnalyzer())
    s.start()
    with pytest.raises(CapabilityFailure) as exc_info:
        s.register("Alice", _img(1))
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert s.roster == []


def test_session_usable_after_errors(session: AttendanceSession):
    with pytest.raises(NoFaceDetected):
        session.register("Alice", _img(3))
    with pytest.raises(NoRegisteredStudents):
        session.take_attendance(_img(1))

    session.register("Alice", _img(1))
    assert session.take_attendance(_img(1)).present == ("Alice",)


def test_run_in_flight_uses_matcher_captured_at_start(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))

    # Simulate a removal committed while the group photo is being analysed.
    analyzer.on_detect = lambda: session.remove("Alice")
    report = session.take_attendance(_img(1))
    analyzer.on_detect = None

    assert report.present == ("Alice",)
    assert session.roster == []
    assert session.matcher is None


def test_close_clears_session(analyzer: _FakeAnalyzer):
    with AttendanceSession(analyzer) as s:
        s.register("Alice", _img(1))
        assert len(s) == 1
    assert s.roster == []
    assert s.matcher is None


def test_reconcile_partitions_roster():
    roster = ["Alice", "Bob", "Cho", "Dev"]
    results = [
        MatchResult("Cho", 0.2),
        MatchResult(None, 0.8),
        MatchResult("Alice", 0.4),
        MatchResult("Cho", 0.3),
        MatchResult("Ghost", 0.1),
    ]

    outcome = reconcile(results, roster)

    assert outcome.present == ("Cho", "Alice")
    assert outcome.absent == ("Bob", "Dev")
    assert set(outcome.present) | set(outcome.absent) == set(roster)
    assert not set(outcome.present) & set(outcome.absent)


def test_reconcile_empty_inputs():
    assert reconcile([], []).present == ()
    outcome = reconcile([], ["Alice"])
    assert outcome.present == ()
    assert outcome.absent == ("Alice",)


def test_display_label_format():
    assert format_match_label(MatchResult("Alice", 0.304)) == "Alice (0.30)"
    assert format_match_label(MatchResult(None, 0.915)) == "unknown (0.92)"
    assert label_name("Mary Ann (0.12)") == "Mary Ann"


def test_serialize_and_annotate_report(session: AttendanceSession, analyzer: _FakeAnalyzer):
    session.register("Alice", _img(1))
    session.register("Bob", _img(2))
    image = _img(4)

    report = session.take_attendance(image)
    data = serialize_report(report, threshold=session.threshold)

    assert data["present"] == ["Alice", "Bob"]
    assert data["absent"] == []
    assert data["threshold"] == pytest.approx(0.6)
    assert data["faces"][0]["label"] == "Alice (0.00)"
    assert data["faces"][1]["bbox"] == [30, 2, 50, 20]
    assert data["faces"][1]["bbox_norm"][0] == pytest.approx(30 / 64, abs=1e-4)

    vis = annotate_image(image, report.faces)
    assert vis.shape == image.shape
    assert not np.array_equal(vis, image)
    assert np.array_equal(image, _img(4))
