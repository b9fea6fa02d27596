import logging
import os

import obs_client  # type: ignore[import]


def main() -> None:
  # Minimal configuration via environment variables
  os.environ.setdefault("OBS_DSN", "http://example-key@localhost:8000")
  os.environ.setdefault("OBS_ENVIRONMENT", "development")

  logger = logging.getLogger("example_app")
  logging.basicConfig(level=logging.INFO)

  obs_client.init()
  obs_client.setup_logging(logger)

  logger.info("Example INFO log from minimal app")
  obs_client.capture_message("Deploy started", level="info")

  try:
    1 / 0
  except ZeroDivisionError:
    obs_client.capture_exception()

  # Pending events are flushed by the exit hook; flushing here reports the outcome.
  ok = obs_client.flush(timeout=2.0)
  logger.info("Delivered pending events: %s", ok)


if __name__ == "__main__":
  main()
