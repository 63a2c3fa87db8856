"""
Unified output system using Loguru.
Routes log lines to a rotating file and, optionally, to the console.
"""

import sys
from pathlib import Path

from loguru import logger

from .config import LoggingConfig, get_data_dir

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"
CONSOLE_FORMAT = "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {message}"


def get_log_file_path() -> Path:
    """Get the default path to the log file."""
    return get_data_dir() / "pixiv2billfish.log"


def setup_loguru(
    log_file: Path, level: str = "INFO", console_output: bool = True
) -> None:
    """
    Configure loguru sinks for a sync run.

    Args:
        log_file: Path to log file (always written at DEBUG)
        level: Minimum level for console output
        console_output: Whether to also log to stderr
    """
    # Remove default handler
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,  # Keep 5 backup files
        level="DEBUG",
        format=LOG_FORMAT,
        enqueue=False,  # Synchronous writes (thread-safe but blocking)
    )

    if console_output:
        logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT)

    logger.info(f"Loguru initialized: {log_file} (level={level})")


def setup_from_config(config: LoggingConfig) -> Path:
    """Configure logging from the [logging] config section and return the log path."""
    log_file = Path(config.log_file) if config.log_file else get_log_file_path()
    setup_loguru(log_file, level=config.level, console_output=config.console_output)
    return log_file

