from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

LEVELS = ("error", "warning", "info")
DEFAULT_LEVEL = "error"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class EventRecord(BaseModel):
  """
  Canonical event shape persisted by the gateway.

  ``stacktrace`` and ``extra`` are kept as received; storage serializes
  them to text rather than decomposing them.
  """

  event_id: str
  level: str = DEFAULT_LEVEL
  message: str
  timestamp: str
  stacktrace: Optional[List[Any]] = None
  platform: Optional[str] = None
  server_name: Optional[str] = None
  environment: Optional[str] = None
  extra: Optional[Dict[str, Any]] = None


class EventGroup(BaseModel):
  """
  Events sharing one message, summarized for a listing page.
  """

  message: str
  level: str
  platform: Optional[str] = None
  last_seen: str
  count: int = Field(..., ge=1)
  latest_event_id: str
