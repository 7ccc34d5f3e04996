import logging
from pythonjsonlogger.json import JsonFormatter

logger = logging.getLogger("idphoto")
logger.setLevel(logging.INFO)

# Importing the module twice must not duplicate every record
if not logger.handlers:
    log_handler = logging.StreamHandler()
    formatter = JsonFormatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={"levelname": "level"},
    )
    log_handler.setFormatter(formatter)
    logger.addHandler(log_handler)


def set_log_level(level: str) -> None:
    """
    Change the level of the pipeline logger, e.g. from the LOG_LEVEL setting.

    Args:
        level (str): Level name such as "debug" or "INFO".
    """
    logger.setLevel(level.upper())
