import re
import sys
from loguru import logger

from config.settings import settings

# Token and password values that may show up in logged payloads or headers.
_SECRET_PATTERNS = (
    (re.compile(r'((?:accessToken|refreshToken|password)[\'"]?\s*[:=]\s*[\'"]?)[^\'"\s,}]+'), r"\1***"),
    (re.compile(r"(Bearer\s+)\S+"), r"\1***"),
)

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def redact(message: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _redact_record(record) -> None:
    record["message"] = redact(record["message"])


def setup_logger():
    """
    Configures the Loguru logger for the rental client.

    Every record passes through a patcher that masks tokens and passwords
    before any sink sees it. Logs go to stderr at 'LOG_LEVEL', and also to
    a rotating file when 'LOG_FILE' is set.
    """
    logger.remove()
    logger.configure(patcher=_redact_record)

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL.upper(),
        format=_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,  # locals in tracebacks would bypass the redaction
    )

    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            level=settings.LOG_LEVEL.upper(),
            format=_FORMAT,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    return logger


# Other modules import 'app_logger' to log messages.
app_logger = setup_logger()
