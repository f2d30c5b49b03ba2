"""
Logging utility for the drift sentinel.

Logs go to stderr so that stdout carries only the rendered drift report,
which CI jobs capture or pipe into other tools.
"""

import logging
import sys


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds grey color to log messages."""

    # ANSI color codes
    GREY = '\033[90m'
    RESET = '\033[0m'

    def __init__(self, fmt=None, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record):
        message = super().format(record)
        if not self.use_color:
            return message
        return f"{self.GREY}{message}{self.RESET}"


JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config, verbose: bool = False) -> None:
    """
    Set up logging configuration.

    Args:
        config: Application configuration
        verbose: Force DEBUG level regardless of configuration
    """
    log_level = getattr(logging, config.log_level.upper(), logging.WARN)
    if verbose:
        log_level = logging.DEBUG

    stream = sys.stderr
    use_color = stream.isatty()

    if config.log_format == "json":
        formatter = ColoredFormatter(JSON_FORMAT, use_color=use_color)
    else:
        formatter = ColoredFormatter(TEXT_FORMAT, use_color=use_color)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.enable_debug_logs or verbose:
        logging.getLogger("drift_sentinel").setLevel(logging.DEBUG)
    else:
        logging.getLogger("drift_sentinel").setLevel(log_level)

    # Reduce noise from boto3 and requests
    logging.getLogger("boto3").setLevel(logging.WARN)
    logging.getLogger("botocore").setLevel(logging.WARN)
    logging.getLogger("urllib3").setLevel(logging.WARN)
