"""
Logging configuration for the client and the stub server.
"""
import logging
import sys
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: Path | None = None, level: str | int = logging.INFO):
    """Configure logging to console and optionally to file."""
    log_level = logging.getLevelName(level.upper()) if isinstance(level, str) else level

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler, unless the host application already configured one
    formatter = logging.Formatter(LOG_FORMAT)
    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler (optional)
    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "smartsched.log")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


logger = logging.getLogger("smartsched")
