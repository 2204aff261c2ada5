import logging
import os
from pathlib import Path


def setup_logging(stage_name: str, log_file: str, level=logging.INFO):
    """Configure logging for an engine component.

    Args:
        stage_name: Name for the logger (typically __name__)
        log_file: Path to the log file to write to
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(stage_name)
    logger.handlers.clear()

    # Disable propagation to root logger to prevent duplicate logging
    logger.propagate = False

    logger.setLevel(level)

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # File Handler
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(file_handler)

    return logger


def read_text_file(filepath: str) -> str:
    """Read the raw text of a dataset file."""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return f.read()
