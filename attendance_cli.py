"""命令行入口：按名单目录注册学生，再对合照点名。

名单目录中每张图片对应一名学生，学生姓名取文件名（不含扩展名）。
"""

from __future__ import annotations

import argparse
import json

from pathlib import Path
from typing import List

import cv2

from classroom_attendance.attendance import AttendanceSession
from classroom_attendance.config import DEFAULT_MATCH_THRESHOLD, MAX_PROCESSING_WIDTH
from classroom_attendance.errors import AttendanceError
from classroom_attendance.face.analyzer import InsightFaceAnalyzer
from classroom_attendance.utils.draw import annotate_image
from classroom_attendance.utils.image import load_image
from classroom_attendance.utils.log import LOG_LEVELS, get_logger, set_log_level
from classroom_attendance.utils.serializer import serialize_report

logger = get_logger(__name__)

IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".bmp", ".webp")


def list_roster_images(roster_dir: Path) -> List[Path]:
    # 不区分大小写的后缀匹配，避免漏掉 0001.JPG 这种大写扩展名
    return sorted(p for p in Path(roster_dir).iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES)


def register_roster(session: AttendanceSession, roster_dir: Path) -> int:
    """Register every image under `roster_dir`; failures are logged and skipped."""
    ok = 0
    for img_file in list_roster_images(roster_dir):
        try:
            session.register(img_file.stem, img_file)
            ok += 1
        except AttendanceError as e:
            logger.warning(f"  {img_file.name}: 注册失败 ({type(e).__name__}: {e})")
    return ok


def confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def main() -> None:
    parser = argparse.ArgumentParser(description="合照点名：将合照中的人脸与名单逐一匹配")
    parser.add_argument("input", help="合照图片路径")
    parser.add_argument("--roster-dir", "-r", required=True, help="名单目录，每名学生一张照片，文件名即姓名")
    parser.add_argument("--output-json", "-j", default=None, help="输出点名结果 JSON 路径")
    parser.add_argument("--output-image", "-o", default=None, help="输出带标注图片路径")
    parser.add_argument(
        "--threshold", "-t", type=float, default=DEFAULT_MATCH_THRESHOLD, help="匹配距离阈值（默认 0.6）"
    )
    parser.add_argument(
        "--max-width", type=int, default=MAX_PROCESSING_WIDTH, help="检测前的最大处理宽度（默认 1200）"
    )
    parser.add_argument("--det-size", type=int, default=640, help="InsightFace det_size（默认 640）")
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "gpu"],
        help="计算设备：auto/cpu/gpu（默认 auto：有 CUDA 就用 GPU）",
    )
    parser.add_argument("--remove", action="append", default=None, help="点名前从名单中移除的学生（可重复）")
    parser.add_argument("--yes", "-y", action="store_true", help="移除学生时不再确认")
    parser.add_argument("--log-level", default="INFO", choices=LOG_LEVELS, help="日志级别（默认 INFO）")

    args = parser.parse_args()
    set_log_level(args.log_level)

    analyzer = InsightFaceAnalyzer(det_size=int(args.det_size), device=str(args.device))
    session = AttendanceSession(analyzer, threshold=float(args.threshold), max_width=int(args.max_width))

    with session:
        registered = register_roster(session, Path(args.roster_dir))
        logger.info(f"名单注册完成: {registered} 名学生")

        for name in args.remove or []:
            if args.yes or confirm(f"Remove {name} from the system?"):
                session.remove(name)

        try:
            image = load_image(args.input)
            report = session.take_attendance(image)
        except AttendanceError as e:
            logger.error(f"点名失败: {type(e).__name__}: {e}")
            raise SystemExit(1)

        logger.info(f"Present: {', '.join(report.present) or '-'}")
        logger.info(f"Absent: {', '.join(report.absent) or '-'}")

        if args.output_json:
            data = serialize_report(report, threshold=session.threshold)
            Path(args.output_json).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            logger.info(f"点名结果已保存至: {args.output_json}")

        if args.output_image:
            cv2.imwrite(args.output_image, annotate_image(image, report.faces))
            logger.info(f"结果图像已保存至: {args.output_image}")


if __name__ == "__main__":
    main()
