import logging

from trace_query.config import settings


def setup_logger(level: str | None = None) -> logging.Logger:
    # Create logger
    logger = logging.getLogger('trace_query')
    logger.setLevel(level or settings.LOG_LEVEL)

    # Adding local handler
    if not logger.handlers:
        console_handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
