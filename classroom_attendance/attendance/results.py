from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from classroom_attendance.config import UNKNOWN_LABEL
from classroom_attendance.face.matcher import MatchResult
from classroom_attendance.face.types import BBox

LABEL_SEPARATOR = " ("


def format_match_label(result: MatchResult, unknown_label: str = UNKNOWN_LABEL) -> str:
    """Display label, e.g. ``"Alice (0.30)"`` or ``"unknown (0.91)"``."""
    name = unknown_label if result.label is None else result.label
    return f"{name}{LABEL_SEPARATOR}{float(result.distance):.2f})"


def label_name(display_label: str) -> str:
    """Student name part of a display label."""
    return str(display_label).split(LABEL_SEPARATOR)[0]


@dataclass(frozen=True)
class FaceMatch:
    # xyxy in original image coordinates (display only)
    bbox: BBox
    result: MatchResult

    @property
    def display_label(self) -> str:
        return format_match_label(self.result)


@dataclass(frozen=True)
class AttendanceOutcome:
    present: Tuple[str, ...]
    absent: Tuple[str, ...]


@dataclass(frozen=True)
class AttendanceReport:
    outcome: AttendanceOutcome
    faces: Tuple[FaceMatch, ...]
    # (width, height) of the original group photo
    image_size: Tuple[int, int]

    @property
    def present(self) -> Tuple[str, ...]:
        return self.outcome.present

    @property
    def absent(self) -> Tuple[str, ...]:
        return self.outcome.absent

    @property
    def unknown_count(self) -> int:
        return sum(1 for f in self.faces if f.result.is_unknown)
