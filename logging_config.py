import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class ChatJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with an ISO-8601 UTC `ts` and a `level` field."""

    def add_fields(self, log_record, record, message_dict):
        super(ChatJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        log_record["level"] = record.levelname


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None, log_format: str = "text"):
    """
    Configure the root logger for the service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a file that receives the same records as stdout
        log_format: "text" for human readable lines, "json" for one JSON object per line
    """
    if log_format == "json":
        formatter = ChatJsonFormatter("%(ts)s %(level)s %(name)s %(message)s")
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = []
    for handler in handlers:
        root.addHandler(handler)

    # Uvicorn installs its own handlers; route them through ours instead
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        for handler in handlers:
            uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
