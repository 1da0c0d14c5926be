import logging
import os
import sys
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when writing to a terminal"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # cyan
        'INFO': '\033[32m',     # green
        'WARNING': '\033[33m',  # yellow
        'ERROR': '\033[31m',    # red
        'CRITICAL': '\033[35m', # magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def __init__(self, use_colors=True):
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self):
        """Check if terminal supports colors"""
        return (
            hasattr(sys.stderr, "isatty") and sys.stderr.isatty() and
            os.environ.get('TERM') != 'dumb' and
            os.environ.get('NO_COLOR') is None
        )

    def format(self, record):
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if self.use_colors:
            level_color = self.COLORS.get(record.levelname, '')
            level_name = f"{level_color}{self.BOLD}{record.levelname:<8}{self.RESET}"
            timestamp = f"\033[90m{self.formatTime(record, '%H:%M:%S')}\033[0m"
            return f"{timestamp} {level_name} {message}"

        return f"{self.formatTime(record, '%Y-%m-%d %H:%M:%S')} - {record.levelname} - {record.name} - {message}"


def setup_logging(verbose: bool = False, no_color: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger with a colored stderr handler and an optional plain log file"""
    logger = logging.getLogger()

    # remove existing handlers so repeated calls do not duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(use_colors=not no_color))
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(ColoredFormatter(use_colors=False))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    # web3 and urllib3 are chatty at DEBUG
    for noisy in ('web3', 'urllib3', 'werkzeug'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
