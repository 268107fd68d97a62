import logging

from config import LOG_LEVEL


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("email_otp_api")
    logger.setLevel(LOG_LEVEL)

    # Uvicorn reloads import the app module more than once
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
