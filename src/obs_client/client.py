"""
Client context: identity, buffer, periodic flush and delivery in one value.

``init()`` builds a :class:`Client` and installs it as the process default
so the module-level ``capture_*``/``flush``/``close`` helpers can reach
it. Code that prefers explicit wiring can keep the returned client and
call its methods directly.
"""

from __future__ import annotations

import atexit
import contextlib
import logging
import os
import sys
import threading
from typing import Any, Dict, Iterator, Optional

import httpx

from .buffer import EventBuffer, FlushTimer
from .config import ClientConfig
from .dsn import parse_dsn
from .event import LEVELS, Clock, ClientIdentity, Event, EventBuilder, RandomSource, utcnow
from .stacktrace import frames_from_exception
from .transport import HttpTransport

DEFAULT_FLUSH_TIMEOUT = 5.0

_logger = logging.getLogger(__name__)


class Client:
  def __init__(
    self,
    config: ClientConfig,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    random_source: RandomSource = os.urandom,
    clock: Clock = utcnow,
    register_exit_hook: bool = True,
  ) -> None:
    endpoint, api_key = parse_dsn(config.dsn)
    self._config = config
    self._identity = ClientIdentity(
      endpoint=endpoint,
      api_key=api_key,
      environment=config.environment,
      server_name=config.server_name,
    )
    self._builder = EventBuilder(self._identity, random_source=random_source, clock=clock)
    self._buffer = EventBuffer()
    self._transport = HttpTransport(endpoint=endpoint, api_key=api_key, transport=transport)
    self._timer = FlushTimer(self._buffer, self.flush, interval=config.flush_interval)
    self._closed = False
    self._close_lock = threading.Lock()
    self._exit_hook_registered = False

    if not config.enabled:
      return

    self._timer.start()
    if register_exit_hook:
      atexit.register(self._at_exit)
      self._exit_hook_registered = True

  @property
  def identity(self) -> ClientIdentity:
    return self._identity

  @property
  def config(self) -> ClientConfig:
    return self._config

  @property
  def pending(self) -> int:
    """Number of captured events waiting for the next flush."""
    return len(self._buffer)

  @property
  def active(self) -> bool:
    return self._config.enabled and not self._closed

  # -- capture -----------------------------------------------------------

  def capture_exception(
    self,
    exc: Optional[BaseException] = None,
    extra: Optional[Dict[str, Any]] = None,
    *,
    level: str = "error",
    message: Optional[str] = None,
  ) -> str:
    """
    Record an exception and return its event id.

    Without ``exc`` the exception currently being handled is used; with
    nothing to report an empty string is returned. ``message`` defaults to
    the exception text.
    """
    if exc is None:
      exc = sys.exc_info()[1]
    if exc is None or not self.active:
      return ""

    details: Dict[str, Any] = {"exception_type": type(exc).__name__}
    details.update(extra or {})
    if level not in LEVELS:
      level = "error"
    if message is None:
      message = str(exc) or type(exc).__name__
    return self._capture(level, message, frames_from_exception(exc), details)

  def capture_message(
    self,
    message: str,
    level: str = "info",
    extra: Optional[Dict[str, Any]] = None,
  ) -> str:
    if not self.active:
      return ""
    if level not in LEVELS:
      _logger.warning("obs_client unknown level %r, recording as 'error'", level)
      level = "error"
    return self._capture(level, message, None, extra)

  def capture_event(self, event: Event) -> str:
    """Buffer an already built event as is."""
    # Checked under the close lock so nothing lands after the final flush.
    with self._close_lock:
      if not self.active:
        return ""
      self._buffer.append(event)
    self._timer.start()
    return event.event_id

  @contextlib.contextmanager
  def capture_exceptions(self, extra: Optional[Dict[str, Any]] = None) -> Iterator[None]:
    """
    Capture any exception escaping the block (or decorated function) and
    re-raise it.
    """
    try:
      yield
    except Exception as exc:
      self.capture_exception(exc, extra=extra)
      raise

  def _capture(self, level, message, stacktrace, extra) -> str:
    try:
      event = self._builder.build(level, message, stacktrace=stacktrace, extra=extra)
    except Exception:
      # Capturing must never break the caller.
      _logger.exception("obs_client failed to build event")
      return ""
    return self.capture_event(event)

  # -- delivery ----------------------------------------------------------

  def flush(self, timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
    """
    Send everything buffered so far; True when every send settled in time.

    Events are removed from the buffer before sending and are never put
    back, whatever the outcome.
    """
    events = self._buffer.drain()
    if not events:
      return True
    return self._transport.send_all(events, timeout)

  async def flush_async(self, timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
    events = self._buffer.drain()
    if not events:
      return True
    return await self._transport.dispatch(events, timeout)

  def close(self, timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
    """
    Stop the periodic flush and make one final flush.

    Only the first call does anything; later calls return True.
    """
    with self._close_lock:
      if self._closed:
        return True
      self._closed = True

    self._timer.stop()
    if self._exit_hook_registered:
      atexit.unregister(self._at_exit)
      self._exit_hook_registered = False

    try:
      return self.flush(timeout)
    except Exception:
      _logger.exception("obs_client final flush failed")
      return False

  def _at_exit(self) -> None:
    self.close()


_client: Optional[Client] = None
_client_lock = threading.Lock()


def init(
  dsn: Optional[str] = None,
  *,
  environment: Optional[str] = None,
  server_name: Optional[str] = None,
  flush_interval: Optional[float] = None,
  transport: Optional[httpx.AsyncBaseTransport] = None,
  random_source: RandomSource = os.urandom,
  clock: Clock = utcnow,
  register_exit_hook: bool = True,
) -> Client:
  """
  Create a client and make it the process default.

  A previously installed default client is closed (flushing what it still
  holds). Raises InvalidDSN for a malformed or missing DSN.
  """
  global _client

  config = ClientConfig.from_params_or_env(
    dsn=dsn,
    environment=environment,
    server_name=server_name,
    flush_interval=flush_interval,
  )
  client = Client(
    config,
    transport=transport,
    random_source=random_source,
    clock=clock,
    register_exit_hook=register_exit_hook,
  )

  with _client_lock:
    previous, _client = _client, client
  if previous is not None:
    previous.close()
  return client


def get_client() -> Optional[Client]:
  return _client


def capture_exception(
  exc: Optional[BaseException] = None,
  extra: Optional[Dict[str, Any]] = None,
) -> str:
  client = _client
  if client is None:
    return ""
  if exc is None:
    exc = sys.exc_info()[1]
  return client.capture_exception(exc, extra=extra)


def capture_message(
  message: str,
  level: str = "info",
  extra: Optional[Dict[str, Any]] = None,
) -> str:
  client = _client
  if client is None:
    return ""
  return client.capture_message(message, level=level, extra=extra)


@contextlib.contextmanager
def capture_exceptions(extra: Optional[Dict[str, Any]] = None) -> Iterator[None]:
  try:
    yield
  except Exception as exc:
    capture_exception(exc, extra=extra)
    raise


def flush(timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
  client = _client
  if client is None:
    return True
  return client.flush(timeout)


def close(timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
  """Close the default client and forget it."""
  global _client

  with _client_lock:
    client, _client = _client, None
  if client is None:
    return True
  return client.close(timeout)

