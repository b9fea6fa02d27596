from __future__ import annotations

import logging
from logging import Handler, LogRecord
from typing import Any, Dict, Optional

from .client import Client, get_client

# Records from these loggers (and their children) are never turned into
# events. The client logs its own delivery failures and httpx logs every
# request it sends, so capturing either would feed each flush into the next.
_INTERNAL_LOGGERS = ("obs_client", "httpx", "httpcore")


def is_internal_logger(name: str) -> bool:
  return any(name == prefix or name.startswith(prefix + ".") for prefix in _INTERNAL_LOGGERS)


def level_for_record(record: LogRecord) -> str:
  if record.levelno >= logging.ERROR:
    return "error"
  if record.levelno >= logging.WARNING:
    return "warning"
  return "info"


class _ObsHandler(Handler):
  """
  Logging handler that turns log records into buffered events.
  """

  def __init__(self, client: Optional[Client] = None, level: int = logging.INFO) -> None:
    super().__init__(level=level)
    self._client = client

  def emit(self, record: LogRecord) -> None:
    if is_internal_logger(record.name):
      return
    try:
      client = self._client or get_client()
      if client is None or not client.active:
        return

      extra: Dict[str, Any] = {
        "logger": record.name,
        "file_path": record.pathname,
        "line_no": record.lineno,
      }

      if record.exc_info and record.exc_info[1] is not None:
        client.capture_exception(
          record.exc_info[1],
          extra=extra,
          level=level_for_record(record),
          message=record.getMessage(),
        )
      else:
        client.capture_message(record.getMessage(), level=level_for_record(record), extra=extra)
    except Exception:
      # Never break application logging.
      self.handleError(record)


def setup_logging(
  logger: Optional[logging.Logger] = None,
  *,
  client: Optional[Client] = None,
  level: int = logging.INFO,
) -> None:
  """
  Attach the obs handler to the standard logging module.

  This does not replace existing handlers; it adds one that captures
  records at ``level`` and above through ``client`` (or the default
  client installed by ``init()`` at emit time).
  """
  target_logger = logger or logging.getLogger()

  # Avoid attaching duplicate handlers to the same logger.
  for existing in target_logger.handlers:
    if isinstance(existing, _ObsHandler):
      return

  target_logger.addHandler(_ObsHandler(client=client, level=level))
