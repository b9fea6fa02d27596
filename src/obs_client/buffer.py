from __future__ import annotations

import logging
import os
import threading
from typing import Callable, List, Optional

from .event import Event

DEFAULT_FLUSH_INTERVAL = 5.0

_logger = logging.getLogger(__name__)


class EventBuffer:
  """
  In-process buffer of captured events.

  ``append`` and ``drain`` share one lock, so an event is either part of
  the snapshot a flush takes or stays behind for the next flush, never
  both and never neither. No I/O happens while the lock is held.
  """

  def __init__(self) -> None:
    self._events: List[Event] = []
    self._lock = threading.Lock()

  def append(self, event: Event) -> None:
    with self._lock:
      self._events.append(event)

  def drain(self) -> List[Event]:
    """Take a snapshot of the buffered events and leave the buffer empty."""
    with self._lock:
      snapshot, self._events = self._events, []
    return snapshot

  def __len__(self) -> int:
    with self._lock:
      return len(self._events)


class FlushTimer:
  """
  Background daemon thread that flushes a non-empty buffer periodically.

  The thread never keeps the interpreter alive; the final flush at exit
  is the job of the client's exit hook. Like the buffer it is
  **fork aware**: ``start`` in a forked child starts a fresh thread.
  """

  def __init__(
    self,
    buffer: EventBuffer,
    flush: Callable[[], object],
    interval: float = DEFAULT_FLUSH_INTERVAL,
  ) -> None:
    self._buffer = buffer
    self._flush = flush
    self._interval = interval
    self._thread: Optional[threading.Thread] = None
    self._stopped = threading.Event()
    self._pid = os.getpid()
    self._lock = threading.Lock()

  @property
  def interval(self) -> float:
    return self._interval

  def start(self) -> None:
    """
    Start the worker thread.

    Safe to call repeatedly: a running thread is left alone and a stopped
    timer stays stopped, except in a forked child where the inherited
    state is reset first.
    """
    current_pid = os.getpid()
    with self._lock:
      if self._pid != current_pid:
        self._pid = current_pid
        self._stopped = threading.Event()
        self._thread = None

      if self._stopped.is_set():
        return
      if self._thread is not None and self._thread.is_alive():
        return

      self._thread = threading.Thread(
        target=self._run, name="obs-client-flush", daemon=True
      )
      self._thread.start()

  def stop(self, join_timeout: float = 1.0) -> None:
    with self._lock:
      self._stopped.set()
      thread = self._thread
    if (
      thread is not None
      and thread.is_alive()
      and thread is not threading.current_thread()
    ):
      thread.join(timeout=join_timeout)

  @property
  def running(self) -> bool:
    thread = self._thread
    return thread is not None and thread.is_alive() and not self._stopped.is_set()

  def _run(self) -> None:
    stopped = self._stopped
    while not stopped.wait(self._interval):
      if not len(self._buffer):
        continue
      try:
        self._flush()
      except Exception:
        _logger.exception("obs_client periodic flush failed")
