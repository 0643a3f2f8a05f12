from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from classroom_attendance.config import FONT_LIST

BOX_COLOR = (191, 44, 123)  # BGR
UNKNOWN_COLOR = (0, 0, 255)


@lru_cache(maxsize=128)
def _load_font(font_path: str, font_size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(font_path, font_size)


@lru_cache(maxsize=64)
def _get_best_font(font_size: int) -> ImageFont.ImageFont:
    """Return a font instance (cached) that best supports CJK on current OS."""
    for p in FONT_LIST:
        try:
            return _load_font(p, int(font_size))
        except OSError:
            continue
    return ImageFont.load_default()


def draw_texts_cn(
    img: np.ndarray,
    items: Sequence[Tuple[str, Tuple[int, int], int, Tuple[int, int, int]]],
) -> None:
    """Draw multiple unicode texts onto one image with a single PIL conversion.

    Args:
        img: OpenCV BGR image, modified in-place.
        items: sequence of (text, (x, y), font_size_px, bgr_color)
    """
    if img is None or len(items) == 0:
        return

    pil_img = Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
    draw = ImageDraw.Draw(pil_img)

    for text, org, font_size, bgr in items:
        font = _get_best_font(int(font_size))
        # PIL uses RGB
        rgb_color = (int(bgr[2]), int(bgr[1]), int(bgr[0]))
        draw.text(tuple(org), str(text), font=font, fill=rgb_color)

    img[:] = cv2.cvtColor(np.array(pil_img), cv2.COLOR_RGB2BGR)


@lru_cache(maxsize=4096)
def measure_text_cn(text: str, font_size: int = 14) -> Tuple[int, int]:
    """使用 PIL 测量文本像素尺寸。"""
    font = _get_best_font(int(font_size))
    dummy = Image.new("RGB", (10, 10))
    draw = ImageDraw.Draw(dummy)
    bbox = draw.textbbox((0, 0), str(text), font=font)
    return int(bbox[2] - bbox[0]), int(bbox[3] - bbox[1])


def annotate_image(image: np.ndarray, faces: Iterable) -> np.ndarray:
    """
    在图片副本上绘制人脸框和 "name (distance)" 标签。

    Args:
        image: BGR 原图
        faces: FaceMatch 序列（bbox 为原图坐标）

    Returns:
        标注后的新图像
    """
    out = image.copy()
    texts = []
    for face in faces:
        x1, y1, x2, y2 = face.bbox
        color = UNKNOWN_COLOR if face.result.is_unknown else BOX_COLOR
        cv2.rectangle(out, (x1, y1), (x2, y2), color, 2)

        label = face.display_label
        # 标签字体取人脸高度的 18%
        font_size = max(12, int(max(12, y2 - y1) * 0.18))
        text_w, text_h = measure_text_cn(label, font_size)
        pad = max(4, int(font_size * 0.25))
        bg_y1 = max(0, y1 - text_h - pad * 2)
        cv2.rectangle(out, (x1, bg_y1), (x1 + text_w + pad * 2, y1), color, -1)
        texts.append((label, (x1 + pad, bg_y1 + pad), font_size, (255, 255, 255)))

    draw_texts_cn(out, texts)
    return out
