import logging
import os
from datetime import datetime

from definitions import LOGS_DIR

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[38;5;244m",  # gray
        "INFO": "\033[38;5;117m",  # sky blue
        "WARNING": "\033[38;5;221m",  # warm yellow
        "ERROR": "\033[38;5;196m",  # bright red
        "CRITICAL": "\033[1;38;5;196;48;5;232m",  # bold bright red on dark bg
    }
    RESET = "\033[0m"

    def format(self, record):
        # Color a copy so file handlers sharing the record stay plain.
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(config, console=False, debug=False):
    """
    Sets up the logging configuration based on provided settings.

    Args:
        config (dict): The configuration dictionary (uses script.log_file_name).
        console (bool): If True, log to console instead of a file.
        debug (bool): If True, set the logging level to DEBUG; otherwise, INFO.
    """
    log_format = "%(asctime)s [%(name)s.%(funcName)s:%(lineno)d] %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    if console:
        handler = logging.StreamHandler()
        handler.setFormatter(ColoredFormatter(log_format, datefmt=date_format))
        log_file_path = None
    else:
        log_file_name_base = config.get("script", {}).get("log_file_name", "skyview")
        log_file_name_time = datetime.now().strftime("%Y%m%d%H%M%S")
        os.makedirs(LOGS_DIR, exist_ok=True)
        log_file_path = os.path.join(LOGS_DIR, f"{log_file_name_base}-{log_file_name_time}.log")
        handler = logging.FileHandler(log_file_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(log_format, date_format))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
        force=True,
    )

    # atproto's httpx transport is chatty at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info("Logging initialized.")
    if log_file_path:
        logger.info("Logging to file: %s", log_file_path)
    else:
        logger.info("Logging to console.")


def log_startup_info(args, config):
    """
    Log startup information, including arguments and configuration details.

    Secrets (the bot app password) are never written to the log.
    """
    logger.info("#" * 80)
    logger.info("New instance of Skyview started.")
    logger.info("TIME: %s", datetime.now())
    logger.info("Startup Parameters:")

    for arg, value in vars(args).items():
        if callable(value):
            continue
        logger.info("  ARG - %s: %s", arg, value)

    logger.info("Configuration:")
    for section, values in config.items():
        if not isinstance(values, dict):
            continue
        for key, value in values.items():
            if key in {"app_password"}:
                value = "***" if value else ""
            logger.info("  %s.%s: %s", section, key, value)

    logger.info("#" * 80)


def truncate_text(text, limit=300):
    """Single-line summary of a post body for page metadata."""
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"
