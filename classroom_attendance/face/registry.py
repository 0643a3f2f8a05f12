from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from classroom_attendance.errors import InvalidInput
from classroom_attendance.utils.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class LabeledDescriptor:
    label: str
    # One descriptor per registration; kept as a tuple so a student could own more later.
    descriptors: Tuple[np.ndarray, ...]


def normalize_label(label) -> str:
    name = "" if label is None else str(label).strip()
    if not name:
        raise InvalidInput("Student name must not be empty")
    return name


def _freeze_descriptor(descriptor) -> np.ndarray:
    try:
        vec = np.array(descriptor, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Descriptor is not numeric: {e}") from e
    if vec.size == 0:
        raise InvalidInput("Descriptor must not be empty")
    if not np.all(np.isfinite(vec)):
        raise InvalidInput("Descriptor contains non-finite values")
    vec.setflags(write=False)
    return vec


class DescriptorRegistry:
    """In-memory registry: one labeled descriptor per student.

    Insertion order is the roster order. Re-registering a name overwrites its
    descriptor but keeps its roster position.
    """

    def __init__(self):
        self._entries: Dict[str, LabeledDescriptor] = {}
        self._dim: Optional[int] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label) -> bool:
        try:
            return normalize_label(label) in self._entries
        except InvalidInput:
            return False

    @property
    def roster(self) -> List[str]:
        return list(self._entries.keys())

    @property
    def dim(self) -> Optional[int]:
        return self._dim

    def get(self, label) -> Optional[LabeledDescriptor]:
        try:
            return self._entries.get(normalize_label(label))
        except InvalidInput:
            return None

    def register(self, label, descriptor) -> LabeledDescriptor:
        name = normalize_label(label)
        vec = _freeze_descriptor(descriptor)

        # An overwrite of the only entry may change dimension (e.g. backend swap).
        others = [n for n in self._entries if n != name]
        if others and self._dim is not None and int(vec.shape[0]) != self._dim:
            raise InvalidInput(f"Descriptor dimension {vec.shape[0]} does not match registry dimension {self._dim}")

        if name in self._entries:
            logger.warning(f"{name} is already registered, overwriting descriptor")

        entry = LabeledDescriptor(label=name, descriptors=(vec,))
        self._entries[name] = entry
        self._dim = int(vec.shape[0])
        return entry

    def remove(self, label) -> bool:
        try:
            name = normalize_label(label)
        except InvalidInput:
            return False
        if self._entries.pop(name, None) is None:
            return False
        if not self._entries:
            self._dim = None
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._dim = None

    def snapshot(self) -> Tuple[LabeledDescriptor, ...]:
        return tuple(self._entries.values())
