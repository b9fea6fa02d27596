import json
import logging

import httpx

import obs_client  # type: ignore[import]
from obs_client import Client, ClientConfig, setup_logging  # type: ignore[import]
from obs_client.logging_setup import _ObsHandler  # type: ignore[import]


def _recording_client():
  received = []

  def handler(request):
    received.append(json.loads(request.content))
    return httpx.Response(201, json={"id": "ok"})

  client = Client(
    ClientConfig(dsn="http://key@localhost:9999", flush_interval=60.0),
    transport=httpx.MockTransport(handler),
    register_exit_hook=False,
  )
  return client, received


def _fresh_logger(name):
  logger = logging.getLogger(name)
  logger.handlers = [h for h in logger.handlers if not isinstance(h, _ObsHandler)]
  logger.setLevel(logging.DEBUG)
  logger.propagate = False
  return logger


def test_setup_logging_captures_records_with_levels():
  client, received = _recording_client()
  logger = _fresh_logger("test-obs-levels")
  setup_logging(logger, client=client)

  logger.debug("too chatty")
  logger.info("hello world")
  logger.warning("careful")
  logger.error("broken")
  client.flush()

  by_message = {e["message"]: e for e in received}
  assert set(by_message) == {"hello world", "careful", "broken"}
  assert by_message["hello world"]["level"] == "info"
  assert by_message["careful"]["level"] == "warning"
  assert by_message["broken"]["level"] == "error"
  assert by_message["hello world"]["extra"]["logger"] == "test-obs-levels"
  client.close(timeout=0.1)


def test_exception_logging_includes_stacktrace():
  client, received = _recording_client()
  logger = _fresh_logger("test-obs-exc")
  setup_logging(logger, client=client)

  try:
    1 / 0
  except ZeroDivisionError:
    logger.exception("division failed")
  client.flush()

  assert len(received) == 1
  event = received[0]
  assert event["message"] == "division failed"
  assert event["level"] == "error"
  assert event["extra"]["exception_type"] == "ZeroDivisionError"
  assert event["stacktrace"][0]["function"] == "(throw)"
  client.close(timeout=0.1)


def test_setup_logging_does_not_attach_twice():
  client, _ = _recording_client()
  logger = _fresh_logger("test-obs-dupes")
  setup_logging(logger, client=client)
  setup_logging(logger, client=client)

  assert sum(isinstance(h, _ObsHandler) for h in logger.handlers) == 1
  client.close(timeout=0.1)


def test_handler_uses_default_client_and_is_silent_before_init():
  logger = _fresh_logger("test-obs-default")
  setup_logging(logger)

  # No default client yet: nothing happens, nothing raises.
  logger.error("before init")

  client = obs_client.init("http://key@localhost:9999", register_exit_hook=False, flush_interval=60)
  logger.error("after init")
  assert client.pending == 1


def test_sdk_internal_records_are_ignored():
  client, _ = _recording_client()
  logger = _fresh_logger("obs_client.transport")
  setup_logging(logger, client=client)

  logger.warning("obs_client HTTP transport failed")
  assert client.pending == 0

  logger.handlers = [h for h in logger.handlers if not isinstance(h, _ObsHandler)]
  logger.propagate = True
  logger.setLevel(logging.NOTSET)
  client.close(timeout=0.1)


def test_transport_request_logs_do_not_feed_back_into_flushes():
  client, received = _recording_client()
  root = logging.getLogger()
  previous_level = root.level
  root.setLevel(logging.INFO)
  setup_logging(root, client=client)
  try:
    client.capture_message("only event")
    for _ in range(3):
      client.flush()

    assert [e["message"] for e in received] == ["only event"]
    assert client.pending == 0
  finally:
    root.handlers = [h for h in root.handlers if not isinstance(h, _ObsHandler)]
    root.setLevel(previous_level)
    client.close(timeout=0.1)


def test_http_library_records_are_ignored():
  client, _ = _recording_client()
  for name in ("httpx", "httpcore.connection"):
    logger = _fresh_logger(name)
    setup_logging(logger, client=client)
    logger.info('HTTP Request: POST http://localhost:9999/api/events "HTTP/1.1 201 Created"')
    logger.handlers = [h for h in logger.handlers if not isinstance(h, _ObsHandler)]
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

  assert client.pending == 0
  client.close(timeout=0.1)
