import logging
import os
from datetime import datetime

from definitions import LOGS_DIR

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[38;5;244m",  # gray
        "INFO": "\033[38;5;120m",  # soft mint green
        "WARNING": "\033[38;5;221m",  # warm yellow
        "ERROR": "\033[38;5;196m",  # bright red
        "CRITICAL": "\033[1;38;5;196;48;5;232m",  # bold bright red on dark bg
    }
    RESET = "\033[0m"

    def format(self, record):
        # Color a copy so other handlers still see the plain level name.
        record = logging.makeLogRecord(record.__dict__)
        level = record.levelname
        if level in self.COLORS:
            record.levelname = f"{self.COLORS[level]}{level}{self.RESET}"
        return super().format(record)


def setup_logging(config, console=False, debug=False):
    """
    Sets up the logging configuration based on provided settings.

    Args:
        config (dict): The configuration dictionary containing script settings.
        console (bool): If True, log to console instead of a file.
        debug (bool): If True, set the logging level to DEBUG; otherwise, INFO.
    """
    logger_level = logging.DEBUG if debug else logging.INFO

    log_format = "%(asctime)s [%(name)s.%(funcName)s:%(lineno)d] %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    if console:
        handler = logging.StreamHandler()
        handler.setFormatter(ColoredFormatter(log_format, datefmt=date_format))
        log_file_path = None
    else:
        log_file_name_base = config.get("script", {}).get("log_file_name", "echosky")
        log_file_name_time = datetime.now().strftime("%Y%m%d%H%M%S")
        log_file_path = os.path.join(LOGS_DIR, f"{log_file_name_base}-{log_file_name_time}.log")
        os.makedirs(LOGS_DIR, exist_ok=True)
        handler = logging.FileHandler(log_file_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(log_format, date_format))

    logging.basicConfig(
        level=logger_level,
        format=log_format,
        datefmt=date_format,
        handlers=[handler],
        force=True,
    )

    # httpx logs every request at INFO; only useful when debugging.
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)

    logger.info("Logging initialized.")
    if console:
        logger.info("Logging to console.")
    else:
        logger.info(f"Logging to file: {log_file_path}")


def log_startup_info(args, config):
    """
    Log startup information, including arguments and configuration details.

    Args:
        args (Namespace): The parsed arguments.
        config (dict): The configuration dictionary.
    """
    logger.info("#" * 80)
    logger.info("New instance of the EchoSky boards client started.")
    logger.info("TIME: %s", datetime.now())
    logger.info("Startup Parameters:")

    for arg, value in vars(args).items():
        if arg == "password":
            value = "***" if value else value
        logger.info(f"  ARG - {arg}: {value}")

    atproto_cfg = config.get("atproto", {})
    forum_cfg = config.get("forum", {})
    logger.info("  SERVICE - %s", atproto_cfg.get("service_url"))
    logger.info("  FORUM - include_follows=%s batch=%s", forum_cfg.get("include_follows"), forum_cfg.get("fanout_batch_size"))
    logger.info("#" * 80)
