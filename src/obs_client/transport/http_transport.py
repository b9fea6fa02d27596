from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..event import Event

EVENTS_PATH = "/api/events"
API_KEY_HEADER = "X-OBS-Key"

_logger = logging.getLogger("obs_client.transport")


@dataclass
class HttpTransport:
  """
  Posts events to the ingestion gateway, one request per event.

  All events of a flush are sent concurrently over one ``httpx.AsyncClient``
  and the whole batch shares a single time budget. Failures are logged at
  WARNING level and never raised back to the caller; nothing is retried.
  """

  endpoint: str
  api_key: str
  # Injected in tests (httpx.MockTransport / httpx.ASGITransport).
  transport: Optional[httpx.AsyncBaseTransport] = None

  @property
  def url(self) -> str:
    return self.endpoint.rstrip("/") + EVENTS_PATH

  def send_all(self, events: List[Event], timeout: float) -> bool:
    """
    Blocking wrapper around :meth:`dispatch`.

    Runs a private event loop in the calling thread, or in a helper thread
    when the caller is already inside a running loop.
    """
    if not events:
      return True

    try:
      asyncio.get_running_loop()
    except RuntimeError:
      return _run_in_new_loop(self.dispatch(events, timeout))

    result: List[bool] = [False]

    def runner() -> None:
      result[0] = _run_in_new_loop(self.dispatch(events, timeout))

    helper = threading.Thread(target=runner, name="obs-client-send", daemon=True)
    helper.start()
    helper.join()
    return result[0]

  async def dispatch(self, events: List[Event], timeout: float) -> bool:
    """
    Send every event concurrently and wait at most ``timeout`` seconds.

    Returns True once every send has settled, whatever the individual
    outcomes; False when the budget ran out and outstanding sends were
    cancelled.
    """
    if not events:
      return True

    async with httpx.AsyncClient(transport=self.transport, timeout=timeout) as client:
      sends = [self._send_one(client, event) for event in events]
      try:
        outcomes = await asyncio.wait_for(
          asyncio.gather(*sends, return_exceptions=True),
          timeout=timeout,
        )
      except asyncio.TimeoutError:
        _logger.warning(
          "obs_client flush timed out after %.2fs; %d event(s) abandoned",
          timeout,
          len(events),
        )
        return False

    failed = sum(1 for outcome in outcomes if outcome is not True)
    if failed:
      _logger.debug("obs_client flush settled with %d/%d failed send(s)", failed, len(events))
    return True

  async def _send_one(self, client: httpx.AsyncClient, event: Event) -> bool:
    body = json.dumps(event.to_dict(), default=str)
    try:
      response = await client.post(
        self.url,
        content=body,
        headers={"Content-Type": "application/json", API_KEY_HEADER: self.api_key},
      )
    except httpx.HTTPError as exc:
      _logger.warning(
        "obs_client HTTP transport failed to send event %s: %s",
        event.event_id,
        exc,
      )
      return False

    if response.status_code >= 300:
      _logger.warning(
        "obs_client ingestion rejected event %s with status %s: %s",
        event.event_id,
        response.status_code,
        response.text,
      )
      return False
    return True


def _run_in_new_loop(coro) -> bool:
  loop = asyncio.new_event_loop()
  try:
    return loop.run_until_complete(coro)
  finally:
    loop.close()
