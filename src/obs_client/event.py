from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .stacktrace import Frame

PLATFORM = "python"
LEVELS = ("error", "warning", "info")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

RandomSource = Callable[[int], bytes]
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ClientIdentity:
  """
  Where events go and how the producing process describes itself.

  Set once by ``init()``; a new ``init()`` builds a new identity.
  """

  endpoint: str
  api_key: str
  environment: str = ""
  server_name: str = ""


@dataclass
class Event:
  """
  Canonical event shape sent to the ingestion gateway.
  """

  event_id: str
  level: str
  message: str
  platform: str
  timestamp: str
  stacktrace: List[Frame] = field(default_factory=list)
  server_name: str = ""
  environment: str = ""
  extra: Dict[str, Any] = field(default_factory=dict)

  def to_dict(self) -> Dict[str, Any]:
    """Wire representation; empty optional fields are left out."""
    payload: Dict[str, Any] = {
      "event_id": self.event_id,
      "level": self.level,
      "message": self.message,
      "platform": self.platform,
      "timestamp": self.timestamp,
    }
    if self.stacktrace:
      payload["stacktrace"] = [frame.to_dict() for frame in self.stacktrace]
    if self.server_name:
      payload["server_name"] = self.server_name
    if self.environment:
      payload["environment"] = self.environment
    if self.extra:
      payload["extra"] = dict(self.extra)
    return payload


def generate_event_id(random_source: RandomSource = os.urandom) -> str:
  """Return a random version-4 UUID string drawn from ``random_source``."""
  return str(uuid.UUID(bytes=random_source(16), version=4))


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
  if moment.tzinfo is not None:
    moment = moment.astimezone(timezone.utc)
  return moment.strftime(TIMESTAMP_FORMAT)


class EventBuilder:
  """
  Stamps id, timestamp, platform and identity onto captured data.
  """

  def __init__(
    self,
    identity: ClientIdentity,
    random_source: RandomSource = os.urandom,
    clock: Clock = utcnow,
  ) -> None:
    self._identity = identity
    self._random_source = random_source
    self._clock = clock

  @property
  def identity(self) -> ClientIdentity:
    return self._identity

  def build(
    self,
    level: str,
    message: str,
    stacktrace: Optional[List[Frame]] = None,
    extra: Optional[Dict[str, Any]] = None,
  ) -> Event:
    if level not in LEVELS:
      raise ValueError(f"Unknown level {level!r}; expected one of {', '.join(LEVELS)}")

    return Event(
      event_id=generate_event_id(self._random_source),
      level=level,
      message=message,
      platform=PLATFORM,
      timestamp=format_timestamp(self._clock()),
      stacktrace=list(stacktrace or []),
      server_name=self._identity.server_name,
      environment=self._identity.environment,
      extra=dict(extra or {}),
    )
