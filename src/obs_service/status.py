from __future__ import annotations

from dataclasses import asdict, dataclass

from .config import GatewayConfig

VERSION = "0.1.0"


@dataclass
class GatewayStatus:
  status: str
  service_name: str
  version: str
  host: str
  port: int
  api_key_configured: bool


def get_status() -> dict:
  """
  Return a simple status payload for the gateway.
  """
  config = GatewayConfig.from_env()
  payload = GatewayStatus(
    status="healthy",
    service_name="obs_gateway",
    version=VERSION,
    host=config.host,
    port=config.port,
    api_key_configured=bool(config.api_key),
  )
  return asdict(payload)
