"""日志配置"""

import logging
import os

from contextlib import contextmanager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def get_logger(name):
    """获取日志记录器"""
    logger = logging.getLogger(name)
    return logger


def set_log_level(level: str) -> None:
    """调整根日志级别（命令行 --log-level）"""
    logging.getLogger().setLevel(getattr(logging, str(level).upper(), logging.INFO))


@contextmanager
def suppress_fds():
    """Redirect FD 1 and 2 to /dev/null while native code prints model banners.

    InsightFace/onnxruntime write from C, bypassing sys.stdout/sys.stderr.
    """
    devnull = os.open(os.devnull, os.O_RDWR)
    saved = (os.dup(1), os.dup(2))
    try:
        os.dup2(devnull, 1)
        os.dup2(devnull, 2)
        yield
    finally:
        os.dup2(saved[0], 1)
        os.dup2(saved[1], 2)
        for fd in (devnull, *saved):
            os.close(fd)
