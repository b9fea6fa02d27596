"""
obs_client

Lightweight error-tracking client that captures exceptions and messages,
buffers them in process and ships them in the background to the obs
ingestion gateway.
"""

from .client import (
  Client,
  capture_exception,
  capture_exceptions,
  capture_message,
  close,
  flush,
  get_client,
  init,
)
from .config import ClientConfig
from .dsn import InvalidDSN, parse_dsn
from .event import ClientIdentity, Event, EventBuilder, format_timestamp, generate_event_id
from .logging_setup import setup_logging
from .stacktrace import Frame, frames_from_exception, parse_stack

__all__ = [
  "Client",
  "ClientConfig",
  "ClientIdentity",
  "Event",
  "EventBuilder",
  "Frame",
  "InvalidDSN",
  "capture_exception",
  "capture_exceptions",
  "capture_message",
  "close",
  "flush",
  "format_timestamp",
  "frames_from_exception",
  "generate_event_id",
  "get_client",
  "init",
  "parse_dsn",
  "parse_stack",
  "setup_logging",
]
