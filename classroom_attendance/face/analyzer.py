import io

from contextlib import redirect_stderr, redirect_stdout
from typing import Dict, List, Optional, Tuple

import numpy as np
import torch

from insightface.app import FaceAnalysis

from classroom_attendance.errors import CapabilityNotReady
from classroom_attendance.face.types import DetectedFace
from classroom_attendance.utils.log import get_logger, suppress_fds
from classroom_attendance.utils.math import l2_normalize

logger = get_logger(__name__)

# 进程内模型缓存：多个会话/测试用例复用同一个 FaceAnalysis 实例。
# 缓存 key 需要包含会影响输出的关键参数（providers/ctx_id/det_size/model name）。
_FACEAPP_CACHE: Dict[Tuple, FaceAnalysis] = {}


class FaceAnalyzer:
    """Face-analysis contract consumed by the attendance pipeline.

    `detect_faces` takes a BGR image and returns zero or more `DetectedFace`
    objects in detection order. `distance_metric` names how embeddings from
    this analyzer should be compared.
    """

    distance_metric: str = "euclidean"

    @property
    def ready(self) -> bool:
        return True

    def prepare(self) -> None:
        pass

    def detect_faces(self, image: np.ndarray) -> List[DetectedFace]:
        raise NotImplementedError


def bbox_iou_xyxy(a: np.ndarray, b: np.ndarray) -> float:
    """计算两个 xyxy bbox 的 IoU。"""
    ax1, ay1, ax2, ay2 = [float(x) for x in a]
    bx1, by1, bx2, by2 = [float(x) for x in b]
    xx1 = max(ax1, bx1)
    yy1 = max(ay1, by1)
    xx2 = min(ax2, bx2)
    yy2 = min(ay2, by2)
    w = max(0.0, xx2 - xx1)
    h = max(0.0, yy2 - yy1)
    inter = w * h
    area_a = max(0.0, ax2 - ax1) * max(0.0, ay2 - ay1)
    area_b = max(0.0, bx2 - bx1) * max(0.0, by2 - by1)
    denom = area_a + area_b - inter
    return float(inter / denom) if denom > 1e-12 else 0.0


def dedupe_faces_nms(faces: List[DetectedFace], iou_thresh: float = 0.30) -> List[DetectedFace]:
    """按 det_score 做 IoU-NMS 去重，保留检测顺序。"""
    if len(faces) <= 1:
        return list(faces)

    order = sorted(range(len(faces)), key=lambda i: float(faces[i].det_score), reverse=True)
    keep_idx: List[int] = []
    for i in order:
        bbox = np.asarray(faces[i].bbox, dtype=float).reshape(-1)[:4]
        if any(bbox_iou_xyxy(bbox, np.asarray(faces[k].bbox, dtype=float).reshape(-1)[:4]) >= iou_thresh for k in keep_idx):
            continue
        keep_idx.append(i)

    return [faces[i] for i in sorted(keep_idx)]


class InsightFaceAnalyzer(FaceAnalyzer):
    """
    InsightFace 检测 + 特征提取。

    embedding 已做 L2 归一化，使用余弦距离（1 - 相似度）比较，
    因此默认阈值 0.6 对应余弦相似度 0.4。
    """

    distance_metric = "cosine"

    def __init__(
        self,
        model_name: str = "buffalo_l",
        det_size: int = 640,
        device: str = "auto",
        nms_iou: float = 0.30,
    ):
        """
        Args:
            model_name: InsightFace模型名称，默认'buffalo_l'
            det_size: 检测输入尺寸
            device: 计算设备，'auto'/'cpu'/'gpu'
            nms_iou: 重叠框去重的 IoU 阈值
        """
        self.model_name = model_name
        self.det_size: Tuple[int, int] = (int(det_size), int(det_size))
        self.device = device
        self.nms_iou = float(nms_iou)
        self.ctx_id = -1  # -1表示CPU，0表示第一个GPU
        self._app: Optional[FaceAnalysis] = None

    @property
    def ready(self) -> bool:
        return self._app is not None

    def _resolve_providers(self) -> List[str]:
        if self.device == "auto":
            try:
                device = "gpu" if torch.cuda.is_available() else "cpu"
            except Exception:
                device = "cpu"
        else:
            device = self.device

        if device == "gpu":
            self.ctx_id = 0
            return ["CUDAExecutionProvider"]
        self.ctx_id = -1
        return ["CPUExecutionProvider"]

    def prepare(self) -> None:
        """初始化InsightFace模型"""
        if self._app is not None:
            return

        providers = self._resolve_providers()
        face_key = (
            str(self.model_name),
            tuple(str(p) for p in providers),
            int(self.ctx_id),
            tuple(int(x) for x in self.det_size),
        )
        cached = _FACEAPP_CACHE.get(face_key)
        if cached is not None:
            self._app = cached
            return

        try:
            with suppress_fds():
                app = FaceAnalysis(
                    name=self.model_name,
                    providers=providers,
                    allowed_modules=["detection", "recognition"],
                )
            buf = io.StringIO()
            with redirect_stdout(buf), redirect_stderr(buf):
                app.prepare(ctx_id=self.ctx_id, det_size=self.det_size)
        except Exception as e:
            logger.error(f"模型初始化失败: {e}")
            raise

        _FACEAPP_CACHE[face_key] = app
        self._app = app
        logger.info(f"已加载 InsightFace 模型: {self.model_name} ({providers[0]})")

    def detect_faces(self, image: np.ndarray) -> List[DetectedFace]:
        """
        从图像中检测人脸

        Args:
            image: BGR 图像

        Returns:
            faces: 检测顺序的人脸列表（已去重）
        """
        if self._app is None:
            raise CapabilityNotReady("Face analysis models are not loaded; call prepare() first")

        raw = self._app.get(image) or []
        faces: List[DetectedFace] = []
        for f in raw:
            emb = getattr(f, "embedding", None)
            if emb is None:
                continue
            faces.append(
                DetectedFace(
                    bbox=np.asarray(f.bbox, dtype=np.float32).reshape(-1)[:4],
                    embedding=l2_normalize(np.asarray(emb, dtype=np.float32).reshape(-1)),
                    det_score=float(getattr(f, "det_score", 1.0)),
                    kps=getattr(f, "kps", None),
                )
            )

        return dedupe_faces_nms(faces, iou_thresh=self.nms_iou)
