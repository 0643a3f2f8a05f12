from __future__ import annotations

from .pipeline import RecognitionConfig, recognize
from .reconcile import reconcile
from .results import AttendanceOutcome, AttendanceReport, FaceMatch, format_match_label, label_name
from .session import AttendanceSession

__all__ = [
    "AttendanceOutcome",
    "AttendanceReport",
    "AttendanceSession",
    "FaceMatch",
    "RecognitionConfig",
    "format_match_label",
    "label_name",
    "recognize",
    "reconcile",
]
