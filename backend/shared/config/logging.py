import logging
import os

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# record-input / record-action are posted many times per second per player.
DEFAULT_LOGGER_LEVELS = "uvicorn.access=WARNING"


def parse_logger_levels(spec: str) -> dict[str, int]:
    """Parse ``name=LEVEL`` pairs separated by commas; malformed pairs are skipped."""
    levels: dict[str, int] = {}
    for item in spec.split(","):
        name, sep, level_name = item.partition("=")
        name = name.strip()
        level = logging._nameToLevel.get(level_name.strip().upper())
        if not sep or not name or level is None:
            continue
        levels[name] = level
    return levels


def configure_logging(level: int | None = None, logger_levels: dict[str, int] | None = None) -> None:
    if level is None:
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        level = logging._nameToLevel.get(level_name, logging.INFO)

    logging.basicConfig(level=level, format=os.getenv("LOG_FORMAT", DEFAULT_LOG_FORMAT))

    if logger_levels is None:
        logger_levels = parse_logger_levels(os.getenv("LOG_LEVELS", DEFAULT_LOGGER_LEVELS))
    for name, logger_level in logger_levels.items():
        logging.getLogger(name).setLevel(logger_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
