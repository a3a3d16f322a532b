from loguru import logger
import sys

from app.core.config import settings


def setup_logging():
    logger.remove()
    logger.add(sys.stdout, level=settings.LOG_LEVEL.upper(),
               backtrace=True, diagnose=False,
               format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level}</level> | "
                      "{name}:{function} | {message} {extra}")
    return logger
