import logging
from typing import List, Optional, Union

import notifiers.logging

from jobtrigger import config

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"


def get_logger() -> logging.Logger:
    return logging.getLogger("jobtrigger")


def get_log_handlers(logger: logging.Logger) -> List[logging.Handler]:
    """Forward warnings to telegram when a bot token is configured."""
    if config.TELEGRAM_TOKEN is None:
        return []
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": config.TELEGRAM_TOKEN,
            "chat_id": config.TELEGRAM_CHAT_ID,
        },
    )
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(name)s %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    return [handler]


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
    if level is None:
        level = config.OVERRIDE_LOGGING
    logging.getLogger().setLevel(level)
    logger = get_logger()
    logger.setLevel(level)
    get_log_handlers(logger)
    return logger
