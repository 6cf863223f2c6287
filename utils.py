# utils.py

import logging
import os
import sys
import shutil
import tempfile
import mimetypes
from pathlib import Path
from queue import Queue
from logging.handlers import QueueHandler
from typing import BinaryIO, Optional
from config import LOG_FILE, LOG_LEVEL, ACCEPTED_MIME_PREFIXES

# Module level so the QueueHandler can format records before they are enqueued.
log_formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s] - %(message)s'
)

LOGGER_NAME = "TradeDocAI"


class FormattedQueueHandler(QueueHandler):
    """A QueueHandler that puts the formatted line, not the record, on the queue."""
    def emit(self, record):
        self.enqueue(self.format(record))


def setup_logger(log_queue: Queue, log_file: Optional[str] = LOG_FILE):
    """Attaches queue, file and stdout handlers to the application logger once."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        logger.setLevel(LOG_LEVEL)

        queue_handler = FormattedQueueHandler(log_queue)
        queue_handler.setFormatter(log_formatter)
        logger.addHandler(queue_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode='a')
            file_handler.setFormatter(log_formatter)
            logger.addHandler(file_handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(log_formatter)
        logger.addHandler(stdout_handler)
    return logger


# Configured by the lifespan manager in main.py
log = logging.getLogger(LOGGER_NAME)


def get_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """Prefers the type the browser declared, falling back to the file extension."""
    if declared and declared != "application/octet-stream":
        return declared
    mime_type, _ = mimetypes.guess_type(filename or "")
    return mime_type or "application/octet-stream"


def is_accepted_mime_type(mime_type: str) -> bool:
    return any(mime_type.startswith(prefix) for prefix in ACCEPTED_MIME_PREFIXES)


def format_size_kb(size: int) -> float:
    return round(size / 1024, 1)


def session_context(session_id: str, task: str) -> str:
    return f"Session:{session_id}|Task:{task}"


def save_upload(file_obj: BinaryIO, filename: str, directory: str) -> tuple[str, int]:
    """Copies an upload stream to a temporary file. Returns its path and size in bytes."""
    os.makedirs(directory, exist_ok=True)
    suffix = Path(filename).suffix
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=directory) as temp_file:
        shutil.copyfileobj(file_obj, temp_file)
        temp_path = temp_file.name
    return temp_path, os.path.getsize(temp_path)


def cleanup_file(file_path: str):
    """Deletes a temporary upload if it is still there."""
    try:
        if file_path and os.path.exists(file_path):
            os.remove(file_path)
            log.info(f"Cleaned up temporary file: {file_path}")
    except OSError as e:
        log.error(f"Error cleaning up file {file_path}: {e}")
