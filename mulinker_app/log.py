import os
import sys
import time
import queue
import json
import logging
from logging.handlers import RotatingFileHandler

# Thread-safe message queue for progress messages shown to the user
msg_queue: queue.Queue = queue.Queue()

logger = logging.getLogger("mulinker_app")
logger.setLevel(logging.INFO)

debug_logger = logging.getLogger("mulinker_app.debug")
debug_logger.setLevel(logging.INFO)
debug_logger.propagate = False

DEBUG_LOGGING = os.environ.get('DEBUG_LOGGING', 'false').lower() in ('1', 'true', 'yes', 'on')

_configured_dir = None


def setup_logging(log_dir: str) -> None:
    """Attach file and stdout handlers once per log directory."""
    global _configured_dir
    if _configured_dir == log_dir:
        return
    os.makedirs(log_dir, exist_ok=True)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in list(debug_logger.handlers):
        debug_logger.removeHandler(handler)
        handler.close()

    # File Handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'mulinker.log'), maxBytes=10*1024*1024, backupCount=5
    )
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(file_handler)

    # Stream Handler (stdout)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter('%(message)s'))  # Keep stdout clean
    logger.addHandler(stream_handler)

    # Debug logging (local-only file)
    debug_handler = RotatingFileHandler(
        os.path.join(log_dir, 'debug.log'), maxBytes=10 * 1024 * 1024, backupCount=10
    )
    debug_handler.setFormatter(logging.Formatter('%(message)s'))
    debug_logger.addHandler(debug_handler)
    debug_logger.disabled = not DEBUG_LOGGING

    _configured_dir = log_dir


def log(msg: str) -> None:
    """Log a message to console, file, and message queue."""
    logger.info(msg)

    # Add to queue for frontend
    timestamp = time.strftime("[%H:%M:%S]")
    msg_queue.put(f"{timestamp} {msg}")


def debug_log_event(event: dict) -> None:
    """Write structured debug events to a local file."""
    if debug_logger.disabled:
        return
    try:
        debug_logger.info(json.dumps(event, ensure_ascii=True, separators=(',', ':')))
    except (TypeError, ValueError) as exc:
        logger.info(f"⚠️ Debug log failure: {exc}")
