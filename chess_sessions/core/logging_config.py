"""Logging setup for the application. Modules simply use logging.getLogger(__name__)."""

import logging
import sys

LOG_FORMATS: dict[str, str] = {
    "simple": "%(name)s - %(levelname)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
}


def setup_logging(level: str = "INFO", format_style: str = "simple") -> None:
    """
    Configure the root logger once at process start.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_style: "simple" or "detailed"
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_format = LOG_FORMATS.get(format_style, LOG_FORMATS["simple"])
    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
