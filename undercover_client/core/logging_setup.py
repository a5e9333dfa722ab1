"""
Logging configuration
日志配置 - 同时输出到控制台和文件
"""

import logging
import os
from typing import Optional

from undercover_client.core.config import settings


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once per process"""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    handlers = [logging.StreamHandler()]  # 控制台输出

    log_file = log_file or settings.LOG_FILE
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))  # 文件输出

    logging.basicConfig(level=log_level, format=settings.LOG_FORMAT, handlers=handlers, force=True)

    # 减少 httpx 的日志噪音
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
