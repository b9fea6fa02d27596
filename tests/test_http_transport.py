import asyncio
import json
import logging
import time

import httpx

from obs_client import ClientIdentity, EventBuilder  # type: ignore[import]
from obs_client.transport import HttpTransport  # type: ignore[import]

_builder = EventBuilder(
  ClientIdentity(endpoint="http://obs.test", api_key="testkey", environment="test", server_name="host-1")
)


def _events(n):
  return [_builder.build("info", f"message {i}") for i in range(n)]


def test_send_all_posts_one_request_per_event():
  requests = []

  def handler(request):
    requests.append(request)
    return httpx.Response(201, json={"id": "ok"})

  transport = HttpTransport(
    endpoint="http://obs.test",
    api_key="testkey",
    transport=httpx.MockTransport(handler),
  )
  events = _events(3)

  assert transport.send_all(events, timeout=2.0) is True

  assert len(requests) == 3
  for request in requests:
    assert request.method == "POST"
    assert request.url == "http://obs.test/api/events"
    assert request.headers["X-OBS-Key"] == "testkey"
    assert request.headers["Content-Type"] == "application/json"
  bodies = sorted(json.loads(r.content)["message"] for r in requests)
  assert bodies == ["message 0", "message 1", "message 2"]


def test_send_all_dispatches_concurrently():
  n = 5
  arrived = []

  async def handler(request):
    arrived.append(request)
    # Each request only completes once all of them are in flight.
    while len(arrived) < n:
      await asyncio.sleep(0.01)
    return httpx.Response(201, json={"id": "ok"})

  transport = HttpTransport("http://obs.test", "testkey", transport=httpx.MockTransport(handler))

  assert transport.send_all(_events(n), timeout=2.0) is True
  assert len(arrived) == n


def test_send_all_reports_success_when_individual_sends_fail(caplog):
  calls = []

  def handler(request):
    calls.append(request)
    if len(calls) == 1:
      raise httpx.ConnectError("gateway unavailable", request=request)
    if len(calls) == 2:
      return httpx.Response(500, json={"error": "Failed to store event"})
    return httpx.Response(201, json={"id": "ok"})

  transport = HttpTransport("http://obs.test", "testkey", transport=httpx.MockTransport(handler))

  with caplog.at_level(logging.WARNING, logger="obs_client.transport"):
    ok = transport.send_all(_events(3), timeout=2.0)

  assert ok is True
  assert len(calls) == 3
  assert "failed to send event" in caplog.text
  assert "rejected event" in caplog.text


def test_send_all_times_out_and_cancels_outstanding(caplog):
  cancelled = []

  async def handler(request):
    try:
      await asyncio.sleep(10)
    except asyncio.CancelledError:
      cancelled.append(request)
      raise
    return httpx.Response(201)

  transport = HttpTransport("http://obs.test", "testkey", transport=httpx.MockTransport(handler))

  started = time.monotonic()
  with caplog.at_level(logging.WARNING, logger="obs_client.transport"):
    ok = transport.send_all(_events(2), timeout=0.2)
  elapsed = time.monotonic() - started

  assert ok is False
  assert elapsed < 5
  assert len(cancelled) == 2
  assert "timed out" in caplog.text


def test_send_all_with_no_events_makes_no_requests():
  calls = []
  transport = HttpTransport(
    "http://obs.test",
    "testkey",
    transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(201)),
  )

  assert transport.send_all([], timeout=1.0) is True
  assert calls == []


def test_send_all_from_inside_running_loop():
  calls = []

  def handler(request):
    calls.append(request)
    return httpx.Response(201, json={"id": "ok"})

  transport = HttpTransport("http://obs.test", "testkey", transport=httpx.MockTransport(handler))

  async def caller():
    return transport.send_all(_events(2), timeout=2.0)

  assert asyncio.run(caller()) is True
  assert len(calls) == 2
