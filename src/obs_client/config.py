from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from typing import Optional

from .buffer import DEFAULT_FLUSH_INTERVAL
from .dsn import InvalidDSN


@dataclass(frozen=True)
class ClientConfig:
  """
  Configuration accepted by ``init()``.

  Values are sourced from explicit arguments first and environment
  variables second.
  """

  dsn: str
  environment: str = ""
  server_name: str = ""
  flush_interval: float = DEFAULT_FLUSH_INTERVAL
  enabled: bool = True

  @classmethod
  def from_env(cls) -> "ClientConfig":
    """
    Load configuration from environment variables.

    Required:
      - OBS_DSN

    Optional:
      - OBS_ENVIRONMENT
      - OBS_SERVER_NAME (default: the machine's hostname)
      - OBS_FLUSH_INTERVAL (seconds, default: 5)
      - OBS_ENABLED
    """
    return cls.from_params_or_env()

  @classmethod
  def from_params_or_env(
    cls,
    dsn: Optional[str] = None,
    environment: Optional[str] = None,
    server_name: Optional[str] = None,
    flush_interval: Optional[float] = None,
  ) -> "ClientConfig":
    """
    Build configuration from explicit parameters, falling back to environment variables.

    Raises InvalidDSN when no DSN is available from either source.
    """
    resolved_dsn = dsn or os.getenv("OBS_DSN")
    if not resolved_dsn:
      raise InvalidDSN(
        "No DSN configured. Pass dsn=... to init() or set OBS_DSN "
        "(e.g. http://apikey@localhost:8000)."
      )

    env_name = environment if environment is not None else os.getenv("OBS_ENVIRONMENT", "")
    host_name = server_name or os.getenv("OBS_SERVER_NAME") or _default_server_name()

    interval = flush_interval
    if interval is None:
      interval = _get_flush_interval()

    return cls(
      dsn=resolved_dsn,
      environment=env_name,
      server_name=host_name,
      flush_interval=interval,
      enabled=_get_enabled_flag(),
    )


def _default_server_name() -> str:
  try:
    return socket.gethostname()
  except OSError:
    return ""


def _get_flush_interval() -> float:
  raw = os.getenv("OBS_FLUSH_INTERVAL")
  if raw is None:
    return DEFAULT_FLUSH_INTERVAL
  try:
    value = float(raw)
  except ValueError:
    return DEFAULT_FLUSH_INTERVAL
  if value <= 0:
    return DEFAULT_FLUSH_INTERVAL
  return value


def _get_enabled_flag() -> bool:
  """
  Determine whether capture is enabled.

  Uses OBS_ENABLED; defaults to True. Accepts common truthy/falsey strings.
  """
  raw = os.getenv("OBS_ENABLED")
  if raw is None:
    return True

  value = raw.strip().lower()
  if value in ("1", "true", "yes", "on"):
    return True
  if value in ("0", "false", "no", "off"):
    return False

  # Unknown value: stay disabled rather than ship events unexpectedly.
  return False
