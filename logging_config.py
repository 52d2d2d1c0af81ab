import logging
import os
import sys
from typing import Optional

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

_configured = False


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None, force: bool = False) -> None:
    """Configure the root logger once. Later calls are no-ops unless force=True."""
    global _configured
    if _configured and not force:
        return

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    # redis-py is chatty at debug level
    logging.getLogger("redis").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
