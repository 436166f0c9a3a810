"""
Logging configuration
"""
from loguru import logger
import sys
from app.config import Settings, get_settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logger(settings: Settings):
    """Configure sinks for the channel-fit service.

    Worker threads log concurrently, so file sinks are enqueued. Tracebacks
    never render local variables: they can hold other tenants' rows.
    """
    logger.remove()

    logger.add(
        sys.stdout,
        colorize=True,
        format=CONSOLE_FORMAT,
        level=settings.log_level,
        diagnose=False,
    )

    if not settings.log_to_file:
        return logger

    logger.add(
        "logs/channel_fit_{time:YYYY-MM-DD}.log",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO",
        enqueue=True,
        diagnose=False,
    )

    # Errors kept longer for incident review
    logger.add(
        "logs/channel_fit_errors_{time:YYYY-MM-DD}.log",
        rotation="00:00",
        retention="90 days",
        level="ERROR",
        enqueue=True,
        diagnose=False,
    )

    return logger


log = setup_logger(get_settings())


def safe_error(error: BaseException) -> str:
    """First line of an exception message, capped, so SQL text and stack
    details stay out of log lines."""
    msg = str(error) or type(error).__name__
    return msg.split("\n")[0][:200]
