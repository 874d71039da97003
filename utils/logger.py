"""
Logging for the layer record core.

Every module logs through a child of the 'layerrec' logger. The package only
attaches a NullHandler, so nothing is printed until the embedding application
calls setup_logging (or configures the 'layerrec' logger itself).

Functions:
    setup_logging: Attach console and optional file handlers to the root logger
    get_logger: Child logger for a module
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = 'layerrec'

CONSOLE_FORMAT = '%(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def setup_logging(log_dir: Optional[Path] = None, console_level: int = logging.INFO) -> Optional[Path]:
    """
    Route record state changes and warnings to stdout, and optionally to a file.

    Calling it again replaces the handlers installed by the previous call.

    Parameters:
    -----------
    log_dir : Optional[Path]
        Directory for a timestamped DEBUG log (request and cache detail).
        No file is written when omitted.
    console_level : int
        Minimum level echoed to stdout

    Returns:
    --------
    Optional[Path]
        Path of the log file, None when logging to console only
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    for handler in [h for h in root.handlers if not isinstance(h, logging.NullHandler)]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_dir is None:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"layerrec_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    root.addHandler(file_handler)

    root.debug(f"Logging to {log_file}")
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, nested under 'layerrec' (pass __name__)."""
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
