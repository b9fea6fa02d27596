from __future__ import annotations

from typing import Tuple
from urllib.parse import urlsplit


class InvalidDSN(ValueError):
  """Raised when a DSN string cannot be decoded into endpoint and key."""


def parse_dsn(dsn: str) -> Tuple[str, str]:
  """
  Split ``scheme://apikey@host[:port]`` into ``(endpoint, api_key)``.

  The endpoint keeps the scheme, host and explicit port only; any path,
  query or password in the DSN is ignored.
  """
  if not isinstance(dsn, str) or not dsn.strip():
    raise InvalidDSN(f"Invalid DSN: {dsn!r}")

  try:
    parts = urlsplit(dsn.strip())
    port = parts.port
  except ValueError as exc:
    raise InvalidDSN(f"Invalid DSN: {dsn!r}") from exc

  if not parts.scheme or not parts.hostname:
    raise InvalidDSN(f"Invalid DSN: {dsn!r}")

  if "@" not in parts.netloc:
    raise InvalidDSN("DSN must contain an API key as username")

  api_key = parts.username or ""
  if not api_key:
    raise InvalidDSN("DSN must contain a non-empty API key")

  host = parts.hostname
  if ":" in host:
    # IPv6 literal
    host = f"[{host}]"
  endpoint = f"{parts.scheme}://{host}"
  if port is not None:
    endpoint += f":{port}"
  return endpoint, api_key
