"""
Development server runner
开发服务器启动脚本
"""

import uvicorn

from undercover_client.core.config import settings
from undercover_client.core.logging_setup import setup_logging

if __name__ == "__main__":
    setup_logging()
    uvicorn.run(
        "undercover_client.devserver.app:app",
        host=settings.DEV_HOST,
        port=settings.DEV_PORT,
        reload=settings.DEBUG,
        access_log=True,
        log_level=settings.LOG_LEVEL.lower()
    )
