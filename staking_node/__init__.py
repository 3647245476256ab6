import logging
import os
from pathlib import Path

__version__ = "1.4.0"

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


def _configure_logging() -> None:
    log_level_env = os.environ.get("LOG_LEVEL", "INFO")
    try:
        numeric_level = int(str(log_level_env).strip())
    except ValueError:
        numeric_level = getattr(
            logging, str(log_level_env).strip().upper(), logging.INFO
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    if not root_logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(stream_handler)

    log_file_env = (os.environ.get("LOG_FILE") or "").strip()
    if not log_file_env:
        return

    log_file_path = Path(log_file_env).expanduser().resolve()
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    if not any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_file_path)
        for handler in root_logger.handlers
    ):
        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)


_configure_logging()


__all__ = ["__version__"]
