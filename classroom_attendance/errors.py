"""Error kinds surfaced by registration and attendance runs.

None of them is fatal: after any of these the session is unchanged and can be
used for the next registration or group photo.
"""
from __future__ import annotations


class AttendanceError(Exception):
    """Base class for all attendance pipeline errors."""


class InvalidInput(AttendanceError):
    """Empty name, missing image, or a malformed descriptor."""


class NoFaceDetected(AttendanceError):
    """Registration image does not contain exactly one usable face."""

    def __init__(self, message: str = "No face detected in the image", face_count: int = 0):
        super().__init__(message)
        self.face_count = int(face_count)


class MultipleFacesDetected(NoFaceDetected):
    """Registration image contains more than one face, so it is ambiguous."""

    def __init__(self, face_count: int):
        super().__init__(f"Expected exactly one face, found {int(face_count)}", face_count=face_count)


class NoRegisteredStudents(AttendanceError):
    """Attendance requested before any student was registered."""


class CapabilityFailure(AttendanceError):
    """The face-analysis backend raised, or the image could not be decoded."""


class CapabilityNotReady(AttendanceError):
    """Face-analysis models have not been prepared yet."""
