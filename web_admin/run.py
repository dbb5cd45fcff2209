#!/usr/bin/env python3
"""
Web 演示服务启动脚本
"""

import sys
import logging

import uvicorn

logger = logging.getLogger(__name__)


def main():
    """主函数"""
    from core.config import settings
    from core.logging import setup_logging
    from web_admin.fastapi_app import create_app

    setup_logging(settings)
    settings.validate_required()

    app = create_app(settings)
    logger.info(f"正在启动 Web 服务 于 http://{settings.WEB_HOST}:{settings.WEB_PORT}")

    try:
        uvicorn.run(
            app,
            host=settings.WEB_HOST,
            port=settings.WEB_PORT,
            log_level=settings.LOG_LEVEL.lower(),
            log_config=None,
        )
    except KeyboardInterrupt:
        logger.info("用户中断，正在关闭 Web 服务...")
    except Exception as e:
        logger.error(f"启动 Web 服务失败: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
