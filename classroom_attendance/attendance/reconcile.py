from __future__ import annotations

from typing import Iterable, List, Sequence

from classroom_attendance.face.matcher import MatchResult

from .results import AttendanceOutcome


def reconcile(match_results: Iterable[MatchResult], roster: Sequence[str]) -> AttendanceOutcome:
    """Split `roster` into present and absent students.

    Present keeps first-seen detection order, absent keeps roster order.
    Unknown results count for nobody. Labels outside the roster are ignored
    so that present and absent always partition the roster.
    """
    roster_set = set(roster)
    present: List[str] = []
    seen = set()
    for r in match_results:
        if r.label is None or r.label in seen or r.label not in roster_set:
            continue
        seen.add(r.label)
        present.append(r.label)

    absent = [name for name in roster if name not in seen]
    return AttendanceOutcome(present=tuple(present), absent=tuple(absent))
