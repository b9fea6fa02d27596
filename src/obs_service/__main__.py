from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import NoReturn
from urllib import error, request

from .config import GatewayConfig


def main(argv: list[str] | None = None) -> NoReturn:
  argv = list(sys.argv[1:] if argv is None else argv)

  if not argv or argv[0] not in {"status", "serve", "init-db"}:
    print("Usage: python -m obs_service {status|serve|init-db}", file=sys.stderr)
    print("  status        - Check gateway status", file=sys.stderr)
    print("  serve         - Run the ingestion gateway", file=sys.stderr)
    print("  init-db       - Create the events table and indexes", file=sys.stderr)
    sys.exit(1)

  if argv[0] == "status":
    _run_status()
  elif argv[0] == "serve":
    _run_serve(argv[1:])
  elif argv[0] == "init-db":
    _run_init_db()


def _run_status() -> None:
  config = GatewayConfig.from_env()
  url = f"http://{config.host}:{config.port}/status"

  try:
    with request.urlopen(url, timeout=1.0) as resp:  # nosec B310
      data = json.loads(resp.read().decode("utf-8"))
  except (error.URLError, error.HTTPError, TimeoutError, OSError):
    print(f"obs gateway status: UNREACHABLE at {url}", file=sys.stderr)
    print("Hint: ensure the gateway is running and listening on this host/port.", file=sys.stderr)
    sys.exit(2)

  print("obs gateway status: HEALTHY")
  print(f"Service: {data.get('service_name')} v{data.get('version')}")
  print(f"Listening on: {data.get('host')}:{data.get('port')}")
  if not data.get("api_key_configured"):
    print("Warning: OBS_API_KEY is not set; ingestion will answer 500.", file=sys.stderr)
  sys.exit(0)


def _run_serve(args: list[str]) -> None:
  config = GatewayConfig.from_env()
  parser = argparse.ArgumentParser(
    prog="obs_service serve",
    description="Run the obs ingestion gateway",
  )
  parser.add_argument("--host", default=config.host, help=f"Bind address (default: {config.host})")
  parser.add_argument("--port", type=int, default=config.port, help=f"Bind port (default: {config.port})")
  parser.add_argument("--log-level", default="info", help="Log level (default: info)")
  parsed = parser.parse_args(args)

  import uvicorn

  logging.basicConfig(level=parsed.log_level.upper())
  uvicorn.run("obs_service.api:app", host=parsed.host, port=parsed.port, log_level=parsed.log_level)
  sys.exit(0)


def _run_init_db() -> None:
  from .storage import PostgresEventStorage

  config = GatewayConfig.from_env()
  PostgresEventStorage(config.database_url).ensure_schema()
  print("obs events schema is ready")
  sys.exit(0)


if __name__ == "__main__":  # pragma: no cover
  main()
