from typing import Dict, Optional

from classroom_attendance.config import UNKNOWN_LABEL


def serialize_face_match(face, image_size: Optional[tuple] = None) -> Dict:
    """Serialize a FaceMatch into JSON-safe form and optionally add normalized coords.

    image_size: (width, height) of the original photo
    """
    x1, y1, x2, y2 = [int(v) for v in face.bbox]
    out = {
        "bbox": [x1, y1, x2, y2],
        "identity": face.result.label if face.result.label is not None else UNKNOWN_LABEL,
        "is_unknown": bool(face.result.is_unknown),
        "distance": round(float(face.result.distance), 4),
        "label": face.display_label,
    }
    if image_size:
        w, h = int(image_size[0]), int(image_size[1])
        if w > 0 and h > 0:
            out["bbox_norm"] = [round(x1 / w, 4), round(y1 / h, 4), round(x2 / w, 4), round(y2 / h, 4)]
    return out


def serialize_report(report, threshold: Optional[float] = None) -> Dict:
    """Serialize an AttendanceReport into a dict for JSON output."""
    data = {
        "present": list(report.present),
        "absent": list(report.absent),
        "unknown_faces": int(report.unknown_count),
        "image_size": [int(report.image_size[0]), int(report.image_size[1])],
        "faces": [serialize_face_match(f, report.image_size) for f in report.faces],
    }
    if threshold is not None:
        data["threshold"] = float(threshold)
    return data
